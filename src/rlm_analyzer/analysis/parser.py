"""Result parser: turns raw oracle text into validated findings.

The oracle may wrap its JSON in prose or markdown fences, omit fields, or
return something that isn't JSON at all. Nothing here raises: every
malformed response degrades to a zero-value fallback so the run continues.
"""

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

from rlm_analyzer.analysis.models import (
    ENTITY_TYPES,
    RELATION_TYPES,
    Entity,
    EntityExtraction,
    GraphSubResult,
    Relationship,
    SubFinding,
)
from rlm_analyzer.ingest.chunker import Chunk

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8


@dataclass(frozen=True)
class ParseOutcome:
    """Either a decoded JSON object or the reason decoding failed."""

    ok: bool
    value: dict[str, Any] | None = None
    reason: str = ""

    @classmethod
    def success(cls, value: dict[str, Any]) -> "ParseOutcome":
        return cls(ok=True, value=value)

    @classmethod
    def fallback(cls, reason: str) -> "ParseOutcome":
        return cls(ok=False, reason=reason)


def extract_json(text: str) -> str | None:
    """Return the span from the first ``{`` to the last ``}``, inclusive."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def decode_json_object(text: str) -> ParseOutcome:
    """Decode the brace-delimited JSON object embedded in ``text``."""
    candidate = extract_json(text)
    if candidate is None:
        return ParseOutcome.fallback("no JSON object found")
    try:
        value = json.loads(candidate)
    except (ValueError, RecursionError) as e:
        return ParseOutcome.fallback(f"invalid JSON: {e}")
    if not isinstance(value, dict):
        return ParseOutcome.fallback(f"expected JSON object, got {type(value).__name__}")
    return ParseOutcome.success(value)


def empty_finding(chunk: Chunk) -> SubFinding:
    return SubFinding(
        relevant=False,
        summary="",
        citations=[],
        chunk_id=chunk.id,
        doc_id=chunk.doc_id,
    )


def parse_sub_finding(text: str, chunk: Chunk) -> SubFinding:
    """Parse a ``{relevant, summary, citations}`` response for one chunk."""
    outcome = decode_json_object(text)
    if not outcome.ok:
        logger.warning(f"Unparseable finding for {chunk.id}: {outcome.reason}")
        return empty_finding(chunk)
    return _coerce_finding(outcome.value, chunk)


def parse_graph_sub_result(text: str, chunk: Chunk) -> GraphSubResult:
    """Parse a combined ``{finding, extraction}`` response for one chunk.

    A response without a ``finding`` key is read as a flat finding.
    Entities and relationships with unknown types or missing names are
    dropped.
    """
    outcome = decode_json_object(text)
    if not outcome.ok:
        logger.warning(f"Unparseable graph result for {chunk.id}: {outcome.reason}")
        return GraphSubResult(finding=empty_finding(chunk), extraction=EntityExtraction())

    data = outcome.value
    finding_data = data.get("finding")
    if not isinstance(finding_data, dict):
        finding_data = data

    extraction_data = data.get("extraction")
    if not isinstance(extraction_data, dict):
        extraction_data = {}

    return GraphSubResult(
        finding=_coerce_finding(finding_data, chunk),
        extraction=_coerce_extraction(extraction_data, chunk),
    )


def _coerce_finding(data: dict[str, Any], chunk: Chunk) -> SubFinding:
    summary = data.get("summary")
    return SubFinding(
        relevant=bool(data.get("relevant")),
        summary="" if summary is None else str(summary),
        citations=_coerce_citations(data.get("citations"), chunk),
        chunk_id=chunk.id,
        doc_id=chunk.doc_id,
    )


def _coerce_citations(raw: Any, chunk: Chunk) -> list[str]:
    if isinstance(raw, str) and raw:
        return [raw]
    if isinstance(raw, list) and raw:
        return [str(c) for c in raw]
    return [chunk.id]


def _coerce_confidence(raw: Any) -> float:
    if isinstance(raw, bool) or not isinstance(raw, int | float) or math.isnan(raw):
        return DEFAULT_CONFIDENCE
    return min(max(float(raw), 0.0), 1.0)


def _coerce_properties(raw: Any) -> dict[str, Any]:
    return dict(raw) if isinstance(raw, dict) else {}


def _as_list(raw: Any) -> list[Any]:
    return raw if isinstance(raw, list) else []


def _coerce_extraction(data: dict[str, Any], chunk: Chunk) -> EntityExtraction:
    entities: list[Entity] = []
    for raw in _as_list(data.get("entities")):
        if not isinstance(raw, dict):
            continue
        entity_type = raw.get("type")
        name = raw.get("name")
        if entity_type not in ENTITY_TYPES or not name:
            logger.debug(f"Dropping entity from {chunk.id}: type={entity_type!r} name={name!r}")
            continue
        entities.append(Entity(
            type=entity_type,
            name=str(name),
            properties=_coerce_properties(raw.get("properties")),
            confidence=_coerce_confidence(raw.get("confidence")),
        ))

    relationships: list[Relationship] = []
    for raw in _as_list(data.get("relationships")):
        if not isinstance(raw, dict):
            continue
        relation_type = raw.get("type")
        source_name = raw.get("sourceName")
        target_name = raw.get("targetName")
        if relation_type not in RELATION_TYPES or not source_name or not target_name:
            logger.debug(
                f"Dropping relationship from {chunk.id}: type={relation_type!r} "
                f"({source_name!r} → {target_name!r})"
            )
            continue
        relationships.append(Relationship(
            type=relation_type,
            source_name=str(source_name),
            target_name=str(target_name),
            properties=_coerce_properties(raw.get("properties")),
            confidence=_coerce_confidence(raw.get("confidence")),
        ))

    return EntityExtraction(entities=entities, relationships=relationships)
