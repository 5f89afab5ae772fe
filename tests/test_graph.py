"""Tests for knowledge graph merging, edge resolution and summaries."""

import pytest
from conftest import extraction

from rlm_analyzer.analysis.models import GraphEdge, GraphNode, KnowledgeGraph
from rlm_analyzer.graph.builder import (
    EMPTY_GRAPH_SUMMARY,
    build_graph,
    merge_entities,
    name_similarity,
    normalize_entity_name,
    summarize_graph,
)


class TestNameSimilarity:
    def test_normalization(self):
        """Case and whitespace differences are ignored."""
        assert normalize_entity_name("  Acme   CORP ") == "acme corp"
        assert name_similarity("Acme Corp", "  acme  corp") == 1.0

    def test_containment(self):
        """One name containing the other scores 0.8."""
        assert name_similarity("Acme Corp", "Acme Corporation") == 0.8
        assert name_similarity("Beta", "Beta LLC") == 0.8

    def test_jaccard(self):
        """Otherwise, the Jaccard index of the word sets."""
        assert name_similarity("acme holdings", "acme corp") == pytest.approx(1 / 3)
        assert name_similarity("trading company northwind", "northwind trading company") == 1.0

    def test_disjoint(self):
        assert name_similarity("alpha", "omega") == 0.0


class TestMergeEntities:
    def test_similar_names_merge(self):
        """'Acme Corp' and 'Acme Corporation' from two chunks become one node."""
        nodes = merge_entities([
            extraction("c1", entities=[("party", "Acme Corp", 0.7)]),
            extraction("c2", entities=[("party", "Acme Corporation", 0.9)]),
        ])
        assert len(nodes) == 1
        node = nodes[0]
        assert node.name == "Acme Corp"
        assert node.source_chunks == ["c1", "c2"]
        assert node.confidence == 0.9

    def test_type_is_a_hard_partition(self):
        """Identical names with different types never merge."""
        nodes = merge_entities([
            extraction("c1", entities=[("party", "Services Agreement"), ("document", "Services Agreement")]),
        ])
        assert sorted(n.type for n in nodes) == ["document", "party"]

    def test_properties_overlay_and_chunks_deduplicated(self):
        """Later properties overwrite earlier keys; a chunk is listed once."""
        nodes = merge_entities([
            extraction("c1", entities=[
                ("amount", "10,000 USD", 0.8, {"currency": "USD", "period": "month"}),
                ("amount", "10,000 usd", 0.6, {"period": "monthly"}),
            ]),
        ])
        assert len(nodes) == 1
        assert nodes[0].properties == {"currency": "USD", "period": "monthly"}
        assert nodes[0].source_chunks == ["c1"]
        assert nodes[0].confidence == 0.8

    def test_ids_follow_type_partition_order(self):
        """Node ids are assigned type by type, in first-seen order."""
        nodes = merge_entities([
            extraction("c1", entities=[("party", "Acme"), ("date", "1 March 2024"), ("party", "Beta")]),
        ])
        assert [(n.id, n.name) for n in nodes] == [("n1", "Acme"), ("n2", "Beta"), ("n3", "1 March 2024")]

    def test_empty(self):
        assert merge_entities([]) == []


class TestBuildGraph:
    def test_builds_nodes_edges_and_metadata(self):
        graph = build_graph(
            [
                extraction(
                    "doc-1-chunk-1",
                    entities=[("party", "Acme Corp"), ("obligation", "Monthly payment")],
                    relationships=[("has_obligation", "Acme Corp", "Monthly payment", 0.9)],
                ),
                extraction("doc-1-chunk-2", entities=[("date", "1 March 2024")]),
            ],
            document_count=1,
            extraction_model="azure/gpt-5-nano",
        )
        assert [n.name for n in graph.nodes] == ["Acme Corp", "Monthly payment", "1 March 2024"]
        assert graph.edges == [GraphEdge(
            id="e1",
            type="has_obligation",
            source="n1",
            target="n2",
            source_chunk="doc-1-chunk-1",
            confidence=0.9,
        )]
        assert graph.metadata.document_count == 1
        assert graph.metadata.chunk_count == 2
        assert graph.metadata.extraction_model == "azure/gpt-5-nano"

    def test_duplicate_edges_deduplicated(self):
        """The same (type, source, target) from two chunks yields one edge."""
        graph = build_graph(
            [
                extraction("c1", entities=[("party", "Acme Corp"), ("party", "Beta LLC")],
                           relationships=[("related_to", "Acme Corp", "Beta LLC")]),
                extraction("c2", entities=[("party", "Acme Corporation")],
                           relationships=[("related_to", "Acme Corporation", "Beta LLC")]),
            ],
            document_count=1,
            extraction_model="m",
        )
        assert len(graph.edges) == 1

    def test_first_seen_edge_wins(self):
        """A duplicate with a different confidence does not update the first edge."""
        graph = build_graph(
            [
                extraction("c1", entities=[("party", "Acme"), ("party", "Beta")],
                           relationships=[("related_to", "Acme", "Beta", 0.5)]),
                extraction("c2", relationships=[("related_to", "Acme", "Beta", 0.99)]),
            ],
            document_count=1,
            extraction_model="m",
        )
        assert len(graph.edges) == 1
        assert graph.edges[0].confidence == 0.5
        assert graph.edges[0].source_chunk == "c1"

    def test_direction_and_type_distinguish_edges(self):
        """Reversed or differently-typed relationships are separate edges."""
        graph = build_graph(
            [extraction(
                "c1",
                entities=[("party", "Acme"), ("party", "Beta")],
                relationships=[
                    ("related_to", "Acme", "Beta"),
                    ("related_to", "Beta", "Acme"),
                    ("references", "Acme", "Beta"),
                ],
            )],
            document_count=1,
            extraction_model="m",
        )
        assert [e.id for e in graph.edges] == ["e1", "e2", "e3"]

    def test_unresolved_endpoint_is_dropped(self):
        """A relationship whose endpoint matches no node creates no edge and no node."""
        graph = build_graph(
            [extraction("c1", entities=[("party", "Acme")],
                        relationships=[("has_right", "Acme", "Completely Unrelated Thing")])],
            document_count=1,
            extraction_model="m",
        )
        assert len(graph.nodes) == 1
        assert graph.edges == []

    def test_fuzzy_endpoint_resolution(self):
        """Endpoint names resolve to similar node names."""
        graph = build_graph(
            [extraction(
                "c1",
                entities=[("party", "Acme Corporation"), ("date", "1 March 2024")],
                relationships=[("effective_on", "acme corp", "1 march 2024")],
            )],
            document_count=1,
            extraction_model="m",
        )
        assert [(e.source, e.target) for e in graph.edges] == [("n1", "n2")]

    def test_fuzzy_resolution_takes_first_match_not_best(self):
        """The first node above the threshold wins even if a later one scores higher."""
        graph = build_graph(
            [extraction(
                "c1",
                entities=[
                    ("party", "Northwind Trading Company Limited"),
                    ("document", "Company Northwind Trading"),
                    ("date", "1 March 2024"),
                ],
                relationships=[("effective_on", "Northwind Trading Company", "1 March 2024")],
            )],
            document_count=1,
            extraction_model="m",
        )
        nodes = {n.id: n.name for n in graph.nodes}
        assert nodes[graph.edges[0].source] == "Northwind Trading Company Limited"

    def test_empty_extractions(self):
        graph = build_graph([], document_count=2, extraction_model="m")
        assert graph.nodes == []
        assert graph.edges == []
        assert graph.metadata.document_count == 2
        assert graph.metadata.chunk_count == 0


class TestSummarizeGraph:
    def test_empty_graph(self):
        """An empty graph renders the fixed sentence."""
        assert summarize_graph(KnowledgeGraph()) == EMPTY_GRAPH_SUMMARY

    def test_summary_layout(self):
        graph = build_graph(
            [extraction(
                "c1",
                entities=[("party", "Acme Corp"), ("party", "Beta LLC"), ("obligation", "Payment")],
                relationships=[("has_obligation", "Acme Corp", "Payment")],
            )],
            document_count=1,
            extraction_model="m",
        )
        summary = summarize_graph(graph)
        assert summary.startswith("=== Knowledge Graph Summary ===\n")
        assert "Entities: 3" in summary
        assert "Relationships: 1" in summary
        assert "party: Acme Corp, Beta LLC" in summary
        assert "obligation: Payment" in summary
        assert "- Acme Corp --[has_obligation]--> Payment" in summary

    def test_nodes_without_edges_omit_relationship_section(self):
        graph = KnowledgeGraph(nodes=[GraphNode(id="n1", type="party", name="Acme")])
        summary = summarize_graph(graph)
        assert "Relationships: 0" in summary
        assert "--- Key Relationships ---" not in summary

    def test_caps_listed_relationships(self):
        """Only the first 20 edges are listed, with a count of the rest."""
        nodes = [GraphNode(id=f"n{i}", type="clause", name=f"Clause {i}") for i in range(1, 27)]
        edges = [
            GraphEdge(id=f"e{i}", type="references", source="n1", target=f"n{i + 1}", source_chunk="c1")
            for i in range(1, 26)
        ]
        summary = summarize_graph(KnowledgeGraph(nodes=nodes, edges=edges))
        assert summary.count("--[references]-->") == 20
        assert summary.rstrip().endswith("... and 5 more relationships")
