"""rlm-analyzer: recursive analysis of documents too long for one prompt.

Splits documents into citable chunks, analyzes each chunk with a bounded
pool of independent oracle sub-calls, optionally builds a knowledge graph
from extracted entities, and aggregates everything into one cited answer.
"""

__version__ = "0.1.0"

from rlm_analyzer.analysis.models import (
    AnalyzeMode,
    AnalyzeOptions,
    AnalyzeRequest,
    AnalyzeResponse,
    DocumentInput,
    KnowledgeGraph,
)
from rlm_analyzer.analysis.orchestrator import Orchestrator
from rlm_analyzer.config import AnalyzerConfig
from rlm_analyzer.llm.client import OracleClient
from rlm_analyzer.pipeline import run_analyze, run_analyze_stream

__all__ = [
    "__version__",
    "AnalyzeMode",
    "AnalyzeOptions",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "AnalyzerConfig",
    "DocumentInput",
    "KnowledgeGraph",
    "OracleClient",
    "Orchestrator",
    "run_analyze",
    "run_analyze_stream",
]
