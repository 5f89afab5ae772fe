"""Library-usable pipeline functions.

Each function corresponds to a CLI command but takes explicit parameters
instead of reading CLI args. Use these from notebooks, web apps, or
anywhere you want rlm-analyzer as a library.
"""

import asyncio
from collections.abc import Callable, Sequence
from typing import Any

from rlm_analyzer.analysis.events import AnalysisEvent, ErrorEvent, ResultEvent
from rlm_analyzer.analysis.models import (
    AnalyzeMode,
    AnalyzeOptions,
    AnalyzeRequest,
    AnalyzeResponse,
    DocumentInput,
)
from rlm_analyzer.analysis.orchestrator import Oracle, Orchestrator
from rlm_analyzer.config import AnalyzerConfig


def build_request(
    documents: Sequence[DocumentInput | dict[str, Any]],
    question: str,
    mode: AnalyzeMode | str,
    options: AnalyzeOptions | dict[str, Any] | None = None,
) -> AnalyzeRequest:
    """Validate loose inputs into an AnalyzeRequest."""
    return AnalyzeRequest.model_validate({
        "documents": [
            doc.model_dump() if isinstance(doc, DocumentInput) else doc
            for doc in documents
        ],
        "question": question,
        "mode": mode,
        "options": options.model_dump(include=options.model_fields_set)
        if isinstance(options, AnalyzeOptions) else options,
    })


def run_analyze(
    documents: Sequence[DocumentInput | dict[str, Any]],
    question: str,
    mode: AnalyzeMode | str = AnalyzeMode.RLM,
    options: AnalyzeOptions | dict[str, Any] | None = None,
    config: AnalyzerConfig | None = None,
    oracle: Oracle | None = None,
) -> AnalyzeResponse:
    """Analyze documents and return the final answer (no progress events).

    Args:
        documents: ``DocumentInput`` objects or ``{"id", "text"}`` dicts
        question: Question to answer from the documents
        mode: "base", "retrieval", "rlm", or "rlm-graph"
        options: Per-run overrides of the configured limits
        config: Settings (loaded from the environment if omitted)
        oracle: Oracle client (a LiteLLM client is built from config if omitted)

    Returns:
        AnalyzeResponse with answer, usage and debug metrics
    """
    request = build_request(documents, question, mode, options)
    orchestrator = Orchestrator.from_config(config or AnalyzerConfig(), oracle=oracle)
    return asyncio.run(orchestrator.analyze(request))


def run_analyze_stream(
    documents: Sequence[DocumentInput | dict[str, Any]],
    question: str,
    on_event: Callable[[AnalysisEvent], None],
    mode: AnalyzeMode | str = AnalyzeMode.RLM,
    options: AnalyzeOptions | dict[str, Any] | None = None,
    config: AnalyzerConfig | None = None,
    oracle: Oracle | None = None,
) -> ResultEvent | ErrorEvent:
    """Analyze documents, passing every event to ``on_event`` as it happens.

    Returns:
        The terminal event: ``ResultEvent`` on success, ``ErrorEvent`` on failure
    """
    request = build_request(documents, question, mode, options)
    orchestrator = Orchestrator.from_config(config or AnalyzerConfig(), oracle=oracle)

    async def _consume() -> ResultEvent | ErrorEvent:
        terminal: ResultEvent | ErrorEvent | None = None
        async for event in orchestrator.stream(request):
            on_event(event)
            if isinstance(event, ResultEvent | ErrorEvent):
                terminal = event
        if terminal is None:
            raise RuntimeError("Event stream ended without a result or error")
        return terminal

    return asyncio.run(_consume())
