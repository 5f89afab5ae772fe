"""Exception hierarchy for rlm-analyzer.

Only configuration and transport failures escape to the caller. Malformed
oracle output is absorbed by the result parser and never raised.
"""


class AnalyzerError(Exception):
    """Base class for all rlm-analyzer errors."""


class ConfigurationError(AnalyzerError):
    """Oracle deployment or credentials are missing or invalid."""


class OracleError(AnalyzerError):
    """The oracle call failed at the transport or provider level."""


class RequestValidationError(AnalyzerError, ValueError):
    """An analysis request is missing its question or documents."""
