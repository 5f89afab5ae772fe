"""Recursive document analysis: result parsing, prompts, events, orchestration."""

from rlm_analyzer.analysis.models import AnalyzeMode, AnalyzeOptions, AnalyzeRequest, AnalyzeResponse

__all__ = ["AnalyzeMode", "AnalyzeOptions", "AnalyzeRequest", "AnalyzeResponse"]
