"""Build a deduplicated knowledge graph from per-chunk extractions.

Entities with the same declared type and a similar name are merged into one
node. Relationships become edges once both endpoint names resolve to a
node. Node and edge ids (``n1``, ``e1``, ...) are synthetic and only
meaningful inside one graph.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from rlm_analyzer.analysis.models import (
    ChunkExtraction,
    GraphEdge,
    GraphMetadata,
    GraphNode,
    KnowledgeGraph,
)

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.7
MAX_SUMMARY_EDGES = 20
EMPTY_GRAPH_SUMMARY = "No entities or relationships were extracted from the documents."


def normalize_entity_name(name: str) -> str:
    """Lower-case, trim, and collapse internal whitespace."""
    return " ".join(name.lower().split())


def name_similarity(a: str, b: str) -> float:
    """Similarity of two entity names in [0, 1].

    1.0 for equal normalized names, 0.8 when one contains the other,
    otherwise the Jaccard index of their word sets.
    """
    a_norm = normalize_entity_name(a)
    b_norm = normalize_entity_name(b)

    if a_norm == b_norm:
        return 1.0
    if a_norm in b_norm or b_norm in a_norm:
        return 0.8

    a_words = set(a_norm.split(" "))
    b_words = set(b_norm.split(" "))
    union = a_words | b_words
    if not union:
        return 0.0
    return len(a_words & b_words) / len(union)


@dataclass
class _MergedEntity:
    type: str
    name: str
    properties: dict[str, Any]
    confidence: float
    source_chunks: list[str] = field(default_factory=list)


def merge_entities(
    extractions: Sequence[ChunkExtraction],
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> list[GraphNode]:
    """Merge raw per-chunk entities into graph nodes.

    Type is a hard partition: entities of different types never merge.
    Within a type, each entity joins the first already-merged entity whose
    name is similar enough, otherwise it starts a new one. Merging unions
    source chunks, keeps the max confidence, and overlays properties.
    """
    by_type: dict[str, list[_MergedEntity]] = {}

    for chunk_extraction in extractions:
        chunk_id = chunk_extraction.chunk_id
        for entity in chunk_extraction.extraction.entities:
            merged = by_type.setdefault(entity.type, [])
            match = next(
                (m for m in merged if name_similarity(entity.name, m.name) >= similarity_threshold),
                None,
            )
            if match is None:
                merged.append(_MergedEntity(
                    type=entity.type,
                    name=entity.name,
                    properties=dict(entity.properties),
                    confidence=entity.confidence,
                    source_chunks=[chunk_id],
                ))
                continue

            if chunk_id not in match.source_chunks:
                match.source_chunks.append(chunk_id)
            match.confidence = max(match.confidence, entity.confidence)
            match.properties.update(entity.properties)

    nodes: list[GraphNode] = []
    for merged in by_type.values():
        for entity in merged:
            nodes.append(GraphNode(
                id=f"n{len(nodes) + 1}",
                type=entity.type,
                name=entity.name,
                properties=entity.properties,
                source_chunks=entity.source_chunks,
                confidence=entity.confidence,
            ))
    return nodes


def _resolve_node(
    name: str,
    nodes_by_name: dict[str, GraphNode],
    similarity_threshold: float,
) -> GraphNode | None:
    """Exact normalized lookup, then the first fuzzy match in insertion order."""
    normalized = normalize_entity_name(name)
    if normalized in nodes_by_name:
        return nodes_by_name[normalized]

    for node_name, node in nodes_by_name.items():
        if name_similarity(normalized, node_name) >= similarity_threshold:
            return node
    return None


def build_graph(
    extractions: Sequence[ChunkExtraction],
    document_count: int,
    extraction_model: str,
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> KnowledgeGraph:
    """Build a knowledge graph from per-chunk extractions.

    Args:
        extractions: Non-empty extractions tagged with their chunk id
        document_count: Number of documents in the run
        extraction_model: Deployment that produced the extractions

    Returns:
        Graph with merged nodes and deduplicated edges
    """
    nodes = merge_entities(extractions, similarity_threshold)

    # Later nodes with the same normalized name shadow earlier ones
    nodes_by_name: dict[str, GraphNode] = {}
    for node in nodes:
        nodes_by_name[normalize_entity_name(node.name)] = node

    edges: list[GraphEdge] = []
    seen: set[tuple[str, str, str]] = set()
    skipped = 0

    for chunk_extraction in extractions:
        for rel in chunk_extraction.extraction.relationships:
            source = _resolve_node(rel.source_name, nodes_by_name, similarity_threshold)
            target = _resolve_node(rel.target_name, nodes_by_name, similarity_threshold)
            if source is None or target is None:
                logger.debug(
                    f"Skipping relationship {rel.type}: "
                    f"unresolved entity ({rel.source_name} → {rel.target_name})"
                )
                skipped += 1
                continue

            # First-seen wins; duplicates don't update confidence or properties
            key = (rel.type, source.id, target.id)
            if key in seen:
                continue
            seen.add(key)

            edges.append(GraphEdge(
                id=f"e{len(edges) + 1}",
                type=rel.type,
                source=source.id,
                target=target.id,
                properties=dict(rel.properties),
                source_chunk=chunk_extraction.chunk_id,
                confidence=rel.confidence,
            ))

    logger.info(
        f"Graph built: {len(extractions)} chunks → "
        f"{len(nodes)} nodes, {len(edges)} edges ({skipped} unresolved)"
    )

    return KnowledgeGraph(
        nodes=nodes,
        edges=edges,
        metadata=GraphMetadata(
            document_count=document_count,
            chunk_count=len(extractions),
            extraction_model=extraction_model,
        ),
    )


def summarize_graph(graph: KnowledgeGraph) -> str:
    """Render the graph as plain text for the aggregation prompt."""
    if not graph.nodes:
        return EMPTY_GRAPH_SUMMARY

    lines = [
        "=== Knowledge Graph Summary ===\n",
        f"Entities: {len(graph.nodes)}",
        f"Relationships: {len(graph.edges)}",
        "",
        "--- Entities by Type ---",
    ]

    names_by_type: dict[str, list[str]] = {}
    for node in graph.nodes:
        names_by_type.setdefault(node.type, []).append(node.name)
    for entity_type, names in names_by_type.items():
        lines.append(f"{entity_type}: {', '.join(names)}")
    lines.append("")

    if graph.edges:
        lines.append("--- Key Relationships ---")
        node_by_id = {node.id: node for node in graph.nodes}
        for edge in graph.edges[:MAX_SUMMARY_EDGES]:
            source = node_by_id.get(edge.source)
            target = node_by_id.get(edge.target)
            if source and target:
                lines.append(f"- {source.name} --[{edge.type}]--> {target.name}")
        if len(graph.edges) > MAX_SUMMARY_EDGES:
            lines.append(f"... and {len(graph.edges) - MAX_SUMMARY_EDGES} more relationships")

    return "\n".join(lines)
