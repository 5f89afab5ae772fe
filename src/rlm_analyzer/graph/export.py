"""Export knowledge graphs to JSON, GraphML, GEXF, and CSV.

GraphML/GEXF flatten complex attributes (lists, dicts) to strings and
collapse parallel edges, since most graph tools handle neither well.
"""

import csv
import json
import logging
from pathlib import Path
from typing import Any

import networkx as nx

from rlm_analyzer.analysis.models import KnowledgeGraph

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("json", "graphml", "gexf", "csv")


def serialize_graph(graph: KnowledgeGraph) -> str:
    """Indented camelCase JSON, the same shape emitted in ``graph`` events."""
    return json.dumps(graph.model_dump(mode="json", by_alias=True), indent=2)


def to_networkx(graph: KnowledgeGraph) -> nx.MultiDiGraph:
    """Convert to a MultiDiGraph keyed by synthetic node and edge ids."""
    g = nx.MultiDiGraph(**graph.metadata.model_dump(by_alias=True))
    for node in graph.nodes:
        g.add_node(
            node.id,
            entity_type=node.type,
            name=node.name,
            properties=dict(node.properties),
            source_chunks=list(node.source_chunks),
            confidence=node.confidence,
        )
    for edge in graph.edges:
        g.add_edge(
            edge.source,
            edge.target,
            key=edge.id,
            relation_type=edge.type,
            properties=dict(edge.properties),
            source_chunk=edge.source_chunk,
            confidence=edge.confidence,
        )
    return g


def export_graph(graph: KnowledgeGraph, output_path: Path, fmt: str = "json") -> Path:
    """Write the graph to ``output_path`` in the requested format.

    Args:
        graph: Knowledge graph to export
        output_path: Target file (directory for CSV)
        fmt: "json", "graphml", "gexf", or "csv"

    Returns:
        Path to the written file (or directory for CSV)
    """
    fmt = fmt.lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported format: {fmt}. Supported: {', '.join(SUPPORTED_FORMATS)}")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if fmt == "json":
        output_path.write_text(serialize_graph(graph))
        return output_path
    if fmt == "csv":
        return _export_csv(graph, output_path)

    flat = _build_flat_graph(graph)
    if fmt == "graphml":
        nx.write_graphml(flat, str(output_path))
    else:
        nx.write_gexf(flat, str(output_path))
    logger.info(
        f"{fmt.upper()} exported: {flat.number_of_nodes()} nodes, "
        f"{flat.number_of_edges()} edges -> {output_path}"
    )
    return output_path


def _flatten_value(value: Any) -> str | int | float | bool:
    """Flatten complex values to strings for GraphML/GEXF compatibility."""
    if isinstance(value, str | int | float | bool):
        return value
    if isinstance(value, list):
        if any(isinstance(v, dict | list | tuple | set) for v in value):
            return json.dumps(value, default=str)
        return "; ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return str(value)


def _build_flat_graph(graph: KnowledgeGraph) -> nx.DiGraph:
    """Simple DiGraph with flattened attributes and ``label`` for display.

    Parallel edges between the same pair are merged by joining their
    relation types and keeping the highest confidence.
    """
    multi = to_networkx(graph)
    flat = nx.DiGraph()

    for node_id, data in multi.nodes(data=True):
        attrs = {k: _flatten_value(v) for k, v in data.items()}
        attrs["label"] = data.get("name", node_id)
        flat.add_node(node_id, **attrs)

    for source, target, data in multi.edges(data=True):
        if flat.has_edge(source, target):
            existing = flat.edges[source, target]
            types = set(str(existing["relation_type"]).split("; ")) | {data["relation_type"]}
            existing["relation_type"] = "; ".join(sorted(types))
            existing["label"] = existing["relation_type"]
            existing["confidence"] = max(existing["confidence"], data["confidence"])
            continue
        attrs = {k: _flatten_value(v) for k, v in data.items()}
        attrs["label"] = data["relation_type"]
        flat.add_edge(source, target, **attrs)

    return flat


def _export_csv(graph: KnowledgeGraph, output_dir: Path) -> Path:
    """Export as CSV (entities.csv + relations.csv)."""
    output_dir.mkdir(parents=True, exist_ok=True)
    node_names = {node.id: node.name for node in graph.nodes}

    with open(output_dir / "entities.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["id", "name", "entity_type", "confidence", "source_chunks", "properties"])
        for node in graph.nodes:
            writer.writerow([
                node.id,
                node.name,
                node.type,
                node.confidence,
                "; ".join(node.source_chunks),
                json.dumps(node.properties, default=str),
            ])

    with open(output_dir / "relations.csv", "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "id", "source_id", "source_name", "target_id", "target_name",
            "relation_type", "confidence", "source_chunk",
        ])
        for edge in graph.edges:
            writer.writerow([
                edge.id,
                edge.source,
                node_names.get(edge.source, edge.source),
                edge.target,
                node_names.get(edge.target, edge.target),
                edge.type,
                edge.confidence,
                edge.source_chunk,
            ])

    logger.info(f"CSV exported: {len(graph.nodes)} entities, {len(graph.edges)} relations -> {output_dir}")
    return output_dir
