"""Analysis orchestrator: the multi-stage state machine behind every run.

    INIT → {BASE | RETRIEVAL | RECURSIVE | RECURSIVE_GRAPH} → AGGREGATE → REWRITE → DONE

with ERROR reachable from any state. The mode is fixed at INIT. Recursive
modes fan out one oracle sub-call per chunk through the bounded pool, then
aggregate the distilled findings (plus a graph summary in graph mode) with
the root deployment. Every mode ends with the same rewrite pass.

Progress is reported by calling ``emit`` with typed events; ``stream()``
wires that to a queue and yields events to a presentation adapter.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from rlm_analyzer.analysis.events import (
    TERMINAL_EVENT_TYPES,
    AnalysisEvent,
    ErrorEvent,
    GraphEvent,
    LogEvent,
    LogType,
    ResultEvent,
)
from rlm_analyzer.analysis.models import (
    AnalyzeDebug,
    AnalyzeMode,
    AnalyzeOptions,
    AnalyzeRequest,
    AnalyzeResponse,
    AnalyzeUsage,
    ChunkExtraction,
    DocumentInput,
    GraphSubResult,
    KnowledgeGraph,
    SubFinding,
)
from rlm_analyzer.analysis.parser import empty_finding, parse_graph_sub_result, parse_sub_finding
from rlm_analyzer.analysis.prompts import (
    BASE_PROMPT,
    GRAPH_ROOT_PROMPT,
    GRAPH_SUB_PROMPT,
    RETRIEVAL_PROMPT,
    REWRITE_PROMPT,
    ROOT_PROMPT,
    SUB_PROMPT,
    build_base_message,
    build_combined_documents,
    build_retrieval_message,
    build_rewrite_message,
    build_root_message,
    build_sub_message,
    format_findings,
)
from rlm_analyzer.concurrency import process_with_pool
from rlm_analyzer.errors import ConfigurationError, OracleError, RequestValidationError
from rlm_analyzer.graph.builder import build_graph, summarize_graph
from rlm_analyzer.ingest.chunker import Chunk, build_chunks
from rlm_analyzer.llm.client import ChatMessage, OracleResponse
from rlm_analyzer.retrieval.ranker import rank_chunks

if TYPE_CHECKING:
    from rlm_analyzer.config import AnalyzerConfig

logger = logging.getLogger(__name__)

ROOT_TEMPERATURE = 0.2
REQUEST_ERROR = "Provide at least one document and a question."

Emit = Callable[[LogEvent | GraphEvent], None]


class Oracle(Protocol):
    async def complete(
        self,
        deployment: str,
        messages: list[ChatMessage],
        temperature: float = ...,
        max_tokens: int | None = ...,
    ) -> OracleResponse: ...


class AnalysisState(str, Enum):
    INIT = "init"
    BASE = "base"
    RETRIEVAL = "retrieval"
    RECURSIVE = "recursive"
    RECURSIVE_GRAPH = "recursive_graph"
    AGGREGATE = "aggregate"
    REWRITE = "rewrite"
    DONE = "done"
    ERROR = "error"


_MODE_STATES = {
    AnalyzeMode.BASE: AnalysisState.BASE,
    AnalyzeMode.RETRIEVAL: AnalysisState.RETRIEVAL,
    AnalyzeMode.RLM: AnalysisState.RECURSIVE,
    AnalyzeMode.RLM_GRAPH: AnalysisState.RECURSIVE_GRAPH,
}


def normalize_documents(documents: Sequence[DocumentInput]) -> list[DocumentInput]:
    """Replace empty ids with ``doc-<n>`` (1-based)."""
    return [
        DocumentInput(id=doc.id or f"doc-{index}", text=doc.text)
        for index, doc in enumerate(documents, start=1)
    ]


def validate_request(request: AnalyzeRequest) -> None:
    """Reject requests without a question or documents."""
    if not request.question.strip() or not request.documents:
        raise RequestValidationError(REQUEST_ERROR)


def subcall_temperature(deployment: str) -> float:
    """Nano deployments run hot to avoid repetitive output; others stay deterministic."""
    return 1.0 if "nano" in deployment.lower() else 0.0


@dataclass
class _Run:
    """Mutable bookkeeping for one run. Never shared between runs."""

    question: str
    documents: list[DocumentInput]
    mode: AnalyzeMode
    options: AnalyzeOptions
    emit: Emit | None = None
    total_tokens: int | None = None
    state: AnalysisState = AnalysisState.INIT

    def log(self, message: str, log_type: LogType = "info") -> None:
        if self.emit is not None:
            self.emit(LogEvent(message=message, log_type=log_type))

    def add_usage(self, total_tokens: int | None) -> None:
        # Calls without usage metadata are skipped, not counted as zero
        if not total_tokens:
            return
        self.total_tokens = (self.total_tokens or 0) + total_tokens

    def transition(self, state: AnalysisState) -> None:
        logger.debug(f"{self.mode.value}: {self.state.value} → {state.value}")
        self.state = state


@dataclass
class _Draft:
    """Output of a mode stage, before the rewrite pass."""

    answer: str
    debug: AnalyzeDebug
    graph: KnowledgeGraph | None = None


@dataclass
class _Fanout:
    chunks: list[Chunk]
    selected: list[Chunk]
    findings: list[SubFinding] = field(default_factory=list)
    extractions: list[ChunkExtraction] = field(default_factory=list)


class Orchestrator:
    """Runs analysis requests against an injected oracle client.

    Args:
        oracle: Anything with an async ``complete(deployment, messages, temperature)``
        root_deployment: Deployment for base/retrieval/aggregation/rewrite calls
        sub_deployment: Deployment for per-chunk sub-calls (defaults to root)
        default_options: Limits applied when a request doesn't override them
        config: When given, credentials are validated at the start of each run
    """

    def __init__(
        self,
        oracle: Oracle,
        root_deployment: str | None,
        sub_deployment: str | None = None,
        default_options: AnalyzeOptions | None = None,
        config: "AnalyzerConfig | None" = None,
    ):
        self.oracle = oracle
        self.root_deployment = root_deployment
        self.sub_deployment = sub_deployment or root_deployment
        self.default_options = default_options or AnalyzeOptions()
        self.config = config

    @classmethod
    def from_config(cls, config: "AnalyzerConfig", oracle: Oracle | None = None) -> "Orchestrator":
        """Build an orchestrator (and, unless given, a LiteLLM client) from settings."""
        if oracle is None:
            from rlm_analyzer.llm.client import OracleClient

            oracle = OracleClient.from_config(config)
        return cls(
            oracle=oracle,
            root_deployment=config.root_deployment,
            sub_deployment=config.sub_deployment,
            default_options=config.options,
            config=config,
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def analyze(self, request: AnalyzeRequest) -> AnalyzeResponse:
        """Run without progress events and return the final response."""
        return await self.run(request)

    def stream(self, request: AnalyzeRequest) -> AsyncIterator[AnalysisEvent]:
        """Run in the background and yield events until ``result`` or ``error``.

        Request validation happens eagerly, before any event is produced.
        Failures after that become a final ``error`` event, never a
        ``result``. Closing the iterator early cancels the run.
        """
        validate_request(request)
        return self._stream(request)

    async def _stream(self, request: AnalyzeRequest) -> AsyncIterator[AnalysisEvent]:
        queue: asyncio.Queue = asyncio.Queue()

        async def produce() -> None:
            try:
                response = await self.run(request, emit=queue.put_nowait)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                message = str(e) or "Unexpected error."
                logger.error(f"Analysis failed: {message}")
                queue.put_nowait(LogEvent(message=f"Error: {message}", log_type="error"))
                queue.put_nowait(ErrorEvent(error=message))
                return
            queue.put_nowait(ResultEvent(data=response))

        task = asyncio.ensure_future(produce())
        try:
            while True:
                event = await queue.get()
                yield event
                if event.type in TERMINAL_EVENT_TYPES:
                    break
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def run(self, request: AnalyzeRequest, emit: Emit | None = None) -> AnalyzeResponse:
        """Drive one request through the state machine.

        Raises:
            RequestValidationError: Missing question or documents
            ConfigurationError: Missing deployment or credentials
            OracleError: Aggregation or rewrite call failed
        """
        validate_request(request)
        run = _Run(
            question=request.question.strip(),
            documents=normalize_documents(request.documents),
            mode=request.mode,
            options=self.default_options.merged(request.options),
            emit=emit,
        )

        try:
            self._check_configuration()

            run.log(f"Initializing {run.mode.value.upper()} analysis...")
            run.log(f"Processing {len(run.documents)} document(s)", "dim")

            run.transition(_MODE_STATES[run.mode])
            if run.mode is AnalyzeMode.BASE:
                draft = await self._run_base(run)
            elif run.mode is AnalyzeMode.RETRIEVAL:
                draft = await self._run_retrieval(run)
            elif run.mode is AnalyzeMode.RLM:
                draft = await self._run_recursive(run)
            else:
                draft = await self._run_recursive_graph(run)

            run.transition(AnalysisState.REWRITE)
            answer = await self._rewrite(run, draft.answer)
        except Exception:
            run.transition(AnalysisState.ERROR)
            raise

        run.transition(AnalysisState.DONE)
        run.log("Analysis complete!", "success")
        logger.info(f"{run.mode.value} analysis complete ({run.total_tokens or 0} tokens)")

        return AnalyzeResponse(
            answer=answer,
            mode=run.mode,
            usage=AnalyzeUsage(total_tokens=run.total_tokens) if run.total_tokens else None,
            debug=draft.debug,
            graph=draft.graph,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _check_configuration(self) -> None:
        if not self.root_deployment:
            raise ConfigurationError(
                "Missing AZURE_OPENAI_DEPLOYMENT (or AZURE_OPENAI_DEPLOYMENT_ROOT)."
            )
        if self.config is not None:
            self.config.validate_credentials(self.root_deployment)
            if self.sub_deployment != self.root_deployment:
                self.config.validate_credentials(self.sub_deployment)

    async def _call(
        self,
        run: _Run,
        deployment: str,
        system: str,
        user: str,
        temperature: float = ROOT_TEMPERATURE,
    ) -> OracleResponse:
        response = await self.oracle.complete(
            deployment,
            [{"role": "system", "content": system}, {"role": "user", "content": user}],
            temperature=temperature,
        )
        run.add_usage(response.total_tokens)
        return response

    async def _run_base(self, run: _Run) -> _Draft:
        run.log("Building combined prompt...")
        combined = build_combined_documents(run.documents)
        limit = run.options.base_max_chars
        truncated = len(combined) > limit
        if truncated:
            combined = combined[:limit]
            run.log(f"Truncated to {limit:,} chars", "dim")

        run.log("Sending to LLM...")
        result = await self._call(run, self.root_deployment, BASE_PROMPT, build_base_message(run.question, combined))
        run.log("LLM response received", "success")

        return _Draft(
            answer=result.content,
            debug=AnalyzeDebug(mode=run.mode, truncated=truncated),
        )

    def _chunk(self, run: _Run) -> list[Chunk]:
        run.log("Chunking documents...")
        chunks = build_chunks(run.documents, chunk_size=run.options.chunk_size)
        run.log(f"Created {len(chunks)} chunks", "success")
        return chunks

    async def _run_retrieval(self, run: _Run) -> _Draft:
        chunks = self._chunk(run)
        top_k = run.options.top_k

        run.log("Ranking chunks by relevance...")
        ranked = rank_chunks(chunks, run.question, top_k)
        # Pathological queries still get context
        snippets = ranked if ranked else chunks[:top_k]
        run.log(f"Selected top {len(snippets)} chunks", "success")

        run.log("Sending to LLM...")
        result = await self._call(
            run, self.root_deployment, RETRIEVAL_PROMPT, build_retrieval_message(run.question, snippets)
        )
        run.log("LLM response received", "success")

        return _Draft(
            answer=result.content,
            debug=AnalyzeDebug(mode=run.mode, chunks_total=len(chunks), chunks_used=len(snippets)),
        )

    async def _fan_out(self, run: _Run, graph: bool) -> _Fanout:
        """Run one sub-call per selected chunk through the bounded pool."""
        chunks = self._chunk(run)
        options = run.options
        limit = len(chunks) if options.comprehensive_mode else min(options.max_subcalls, len(chunks))
        selected = chunks[:limit]

        label = "RLM + Graph analysis" if graph else "recursive analysis"
        suffix = " - COMPREHENSIVE MODE" if options.comprehensive_mode else ""
        run.log(f"Starting {label} ({limit} chunks, {options.concurrency} concurrent){suffix}...")

        deployment = self.sub_deployment
        temperature = subcall_temperature(deployment)
        system = GRAPH_SUB_PROMPT if graph else SUB_PROMPT

        async def process(chunk: Chunk, _index: int) -> tuple[SubFinding | GraphSubResult, int | None]:
            try:
                response = await self.oracle.complete(
                    deployment,
                    [
                        {"role": "system", "content": system},
                        {"role": "user", "content": build_sub_message(run.question, chunk)},
                    ],
                    temperature=temperature,
                )
            except OracleError as e:
                logger.warning(f"Sub-call failed for {chunk.id}, using empty finding: {e}")
                if graph:
                    return GraphSubResult(finding=empty_finding(chunk)), None
                return empty_finding(chunk), None

            if graph:
                return parse_graph_sub_result(response.content, chunk), response.total_tokens
            return parse_sub_finding(response.content, chunk), response.total_tokens

        pool_results = await process_with_pool(
            selected,
            process,
            concurrency=options.concurrency,
            on_progress=lambda completed, total: run.log(f"Completed {completed}/{total} chunks", "dim"),
        )

        fanout = _Fanout(chunks=chunks, selected=selected)
        for pool_result in pool_results:
            chunk = pool_result.item
            parsed, total_tokens = pool_result.result
            run.add_usage(total_tokens)

            if isinstance(parsed, GraphSubResult):
                finding = parsed.finding
                if not parsed.extraction.is_empty:
                    fanout.extractions.append(ChunkExtraction(chunk_id=chunk.id, extraction=parsed.extraction))
                    run.log(
                        f"  Extracted {len(parsed.extraction.entities)} entities, "
                        f"{len(parsed.extraction.relationships)} relationships from {chunk.id}",
                        "dim",
                    )
            else:
                finding = parsed

            if options.comprehensive_mode or finding.relevant:
                fanout.findings.append(finding)
                kind = "relevant" if finding.relevant else "additional"
                run.log(f"  ✓ Found {kind} content in {chunk.id}", "success")

        run.log(f"Extracted {len(fanout.findings)} relevant findings", "success")
        return fanout

    async def _aggregate(self, run: _Run, system: str, user: str, log_message: str) -> str:
        run.transition(AnalysisState.AGGREGATE)
        run.log(log_message)
        result = await self._call(run, self.root_deployment, system, user)
        run.log("Aggregation complete", "success")
        return result.content

    async def _run_recursive(self, run: _Run) -> _Draft:
        fanout = await self._fan_out(run, graph=False)

        answer = await self._aggregate(
            run,
            ROOT_PROMPT,
            build_root_message(run.question, format_findings(fanout.findings)),
            "Aggregating findings with root model...",
        )

        used = len(fanout.selected)
        return _Draft(
            answer=answer,
            debug=AnalyzeDebug(mode=run.mode, chunks_total=len(fanout.chunks), chunks_used=used, subcalls=used),
        )

    async def _run_recursive_graph(self, run: _Run) -> _Draft:
        fanout = await self._fan_out(run, graph=True)

        run.log("Building knowledge graph...")
        graph = build_graph(fanout.extractions, len(run.documents), self.sub_deployment)
        run.log(f"Graph built: {len(graph.nodes)} nodes, {len(graph.edges)} edges", "success")
        if run.emit is not None:
            run.emit(GraphEvent(data=graph))

        answer = await self._aggregate(
            run,
            GRAPH_ROOT_PROMPT,
            build_root_message(run.question, format_findings(fanout.findings), summarize_graph(graph)),
            "Aggregating findings with graph-aware root model...",
        )

        used = len(fanout.selected)
        return _Draft(
            answer=answer,
            debug=AnalyzeDebug(
                mode=run.mode,
                chunks_total=len(fanout.chunks),
                chunks_used=used,
                subcalls=used,
                graph_nodes=len(graph.nodes),
                graph_edges=len(graph.edges),
            ),
            graph=graph,
        )

    async def _rewrite(self, run: _Run, draft: str) -> str:
        """Polish the draft; empty drafts skip the call, empty rewrites keep the draft."""
        if not draft.strip():
            return draft

        run.log("Rewriting answer for clarity...")
        result = await self._call(run, self.root_deployment, REWRITE_PROMPT, build_rewrite_message(run.question, draft))
        run.log("Rewrite complete", "success")

        if not result.content:
            logger.warning("Rewrite returned empty output, keeping aggregated answer")
            return draft
        return result.content
