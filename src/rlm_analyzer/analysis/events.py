"""Typed progress/result events emitted by the orchestrator.

The orchestrator only puts events on a queue. Presentation adapters (the
CLI renderer, ``encode_sse`` for HTTP event streams) drain and re-encode
them.
"""

import json
import time
from typing import Annotated, Literal

from pydantic import Field

from rlm_analyzer.analysis.models import AnalyzeResponse, KnowledgeGraph, _WireModel

LogType = Literal["info", "success", "error", "dim"]


def _now_ms() -> int:
    return int(time.time() * 1000)


class LogEvent(_WireModel):
    """An orchestration milestone."""

    type: Literal["log"] = "log"
    message: str
    log_type: LogType = "info"
    timestamp: int = Field(default_factory=_now_ms)


class GraphEvent(_WireModel):
    """The knowledge graph, emitted once in graph mode."""

    type: Literal["graph"] = "graph"
    data: KnowledgeGraph


class ResultEvent(_WireModel):
    """Terminal event carrying the final response."""

    type: Literal["result"] = "result"
    data: AnalyzeResponse


class ErrorEvent(_WireModel):
    """Terminal event emitted instead of ``result`` when a run fails."""

    type: Literal["error"] = "error"
    error: str


AnalysisEvent = Annotated[
    LogEvent | GraphEvent | ResultEvent | ErrorEvent,
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"result", "error"})


def event_to_wire(event: LogEvent | GraphEvent | ResultEvent | ErrorEvent) -> dict:
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def encode_sse(event: LogEvent | GraphEvent | ResultEvent | ErrorEvent) -> str:
    """Encode one event as a server-sent-events ``data:`` frame."""
    return f"data: {json.dumps(event_to_wire(event))}\n\n"
