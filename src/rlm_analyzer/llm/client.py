"""Oracle client: a thin async wrapper over LiteLLM chat completions.

The oracle is untrusted: it returns *some* text for every successful call,
but that text may not be the JSON that was asked for. Validating it is the
result parser's job, not this module's.

Transport failures raise ``OracleError`` without retrying. Only provider
rate limits are retried, with exponential backoff, and a sliding-window
limiter keeps concurrent sub-calls under the configured RPM.
"""

import asyncio
import collections
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal, TypedDict

import litellm

from rlm_analyzer.errors import OracleError

if TYPE_CHECKING:
    from rlm_analyzer.config import AnalyzerConfig

logger = logging.getLogger(__name__)

# Suppress LiteLLM's verbose logging
litellm.suppress_debug_info = True


class ChatMessage(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass(frozen=True)
class OracleResponse:
    """Trimmed completion text plus token usage, when the provider reports it."""

    content: str
    total_tokens: int | None = None


class _RateLimiter:
    """Keeps oracle calls under ``rpm`` requests per rolling minute.

    Pool slots acquire the limiter one at a time, so a burst of concurrent
    sub-calls is spread out instead of tripping the provider's limit.
    """

    WINDOW_SECONDS = 60.0

    def __init__(self, rpm: int):
        self.rpm = rpm
        self.recent_calls: collections.deque[float] = collections.deque(maxlen=max(rpm, 1))
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        if self.rpm <= 0:
            return
        async with self._lock:
            if len(self.recent_calls) == self.rpm:
                delay = self.recent_calls[0] + self.WINDOW_SECONDS - time.monotonic()
                if delay > 0:
                    logger.debug(f"Throttling oracle calls for {delay:.1f}s (limit {self.rpm}/min)")
                    await asyncio.sleep(delay)
            self.recent_calls.append(time.monotonic())


class OracleClient:
    """Chat-completion client shared by every call in a process.

    Construct one at the entry point and pass it into the orchestrator.
    """

    def __init__(
        self,
        azure_endpoint: str | None = None,
        azure_api_key: str | None = None,
        azure_api_version: str | None = None,
        rpm: int = 120,
        timeout: int = 120,
        rate_limit_retries: int = 5,
        rate_limit_base_wait: float = 2.0,
    ):
        self.azure_endpoint = azure_endpoint
        self.azure_api_key = azure_api_key
        self.azure_api_version = azure_api_version
        self.timeout = timeout
        self.rate_limit_retries = rate_limit_retries
        self.rate_limit_base_wait = rate_limit_base_wait
        self.total_tokens = 0
        self.call_count = 0
        self._limiter = _RateLimiter(rpm)

    @classmethod
    def from_config(cls, config: "AnalyzerConfig") -> "OracleClient":
        return cls(
            azure_endpoint=config.azure_endpoint,
            azure_api_key=config.azure_api_key,
            azure_api_version=config.azure_api_version,
            rpm=config.rpm,
            timeout=config.timeout,
        )

    def _provider_kwargs(self, deployment: str) -> dict[str, Any]:
        if not deployment.startswith("azure/"):
            return {}
        kwargs: dict[str, Any] = {}
        if self.azure_endpoint:
            kwargs["api_base"] = self.azure_endpoint
        if self.azure_api_key:
            kwargs["api_key"] = self.azure_api_key
        if self.azure_api_version:
            kwargs["api_version"] = self.azure_api_version
        return kwargs

    def _track_usage(self, response: Any) -> int | None:
        self.call_count += 1
        usage = getattr(response, "usage", None)
        total = getattr(usage, "total_tokens", None) if usage else None
        if total:
            self.total_tokens += total
            return int(total)
        return None

    async def complete(
        self,
        deployment: str,
        messages: list[ChatMessage],
        temperature: float = 0.2,
        max_tokens: int | None = None,
    ) -> OracleResponse:
        """Issue one chat completion and return its trimmed text.

        Raises:
            OracleError: On transport/provider failure, or when rate-limit
                retries are exhausted
        """
        rate_limit_hits = 0

        while True:
            await self._limiter.wait()
            try:
                response = await litellm.acompletion(
                    model=deployment,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    timeout=self.timeout,
                    **self._provider_kwargs(deployment),
                )
            except litellm.RateLimitError as exc:
                rate_limit_hits += 1
                if rate_limit_hits > self.rate_limit_retries:
                    raise OracleError(
                        f"Rate limited {rate_limit_hits} times by {deployment}, giving up."
                    ) from exc
                wait = min(self.rate_limit_base_wait * (2 ** (rate_limit_hits - 1)), 60)
                logger.warning(
                    f"Rate limited, waiting {wait:.0f}s "
                    f"(rate limit hit {rate_limit_hits}/{self.rate_limit_retries})"
                )
                await asyncio.sleep(wait)
                continue
            except asyncio.CancelledError:
                raise
            except litellm.Timeout as exc:
                raise OracleError(f"Oracle call to {deployment} timed out after {self.timeout}s") from exc
            except Exception as exc:
                raise OracleError(f"Oracle call to {deployment} failed: {exc}") from exc

            total_tokens = self._track_usage(response)
            choices = getattr(response, "choices", None) or []
            message = choices[0].message if choices else None
            content = (getattr(message, "content", None) or "").strip()
            if not content:
                logger.warning(f"Empty response from {deployment}")
            return OracleResponse(content=content, total_tokens=total_tokens)
