"""Oracle (language-model) client boundary."""

from rlm_analyzer.llm.client import ChatMessage, OracleClient, OracleResponse

__all__ = ["ChatMessage", "OracleClient", "OracleResponse"]
