"""
OpenRouter Client - Chat completions through the LLM aggregation API.

NO DICTIONARIES - Completions are returned as typed dataclasses.
"""

import time
from dataclasses import dataclass
from typing import Any

import httpx
from structlog import get_logger

from app.exceptions import ConfigurationMissingError, LLMProviderError, LLMTimeoutError
from app.observability.metrics import metrics
from app.observability.tracing import trace_operation

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Respond naturally to the user's questions and requests."
)


@dataclass(frozen=True)
class LLMCompletion:
    """One completion as reported by the provider."""

    content: str
    model: str
    total_tokens: int | None
    finish_reason: str | None = None

    @property
    def is_blank(self) -> bool:
        return not self.content.strip()


class OpenRouterClient:
    """
    Minimal OpenRouter chat-completions client.

    Timeouts surface as LLMTimeoutError; every other failure as
    LLMProviderError. The caller decides whether to retry.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        referer: str = "https://axoncore.ai",
        app_title: str = "AxonCore AI",
        timeout_seconds: float = 45.0,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.referer = referer
        self.app_title = app_title
        self.timeout_seconds = timeout_seconds
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def complete(
        self, model: str, system_prompt: str | None, user_message: str
    ) -> LLMCompletion:
        """
        Request one completion.

        Raises:
            ConfigurationMissingError: No API key configured
            LLMTimeoutError: No response within the timeout
            LLMProviderError: Transport error, non-2xx status or malformed body
        """
        if not self._api_key:
            raise ConfigurationMissingError("LLM service")

        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": user_message},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "HTTP-Referer": self.referer,
            "X-Title": self.app_title,
            "Content-Type": "application/json",
        }

        start = time.perf_counter()
        with trace_operation("llm_completion", model=model):
            try:
                response = await self._client.post(
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=headers,
                    timeout=self.timeout_seconds,
                )
            except httpx.TimeoutException as exc:
                metrics.record_llm_call(model, "timeout", time.perf_counter() - start)
                logger.error("llm_timeout", model=model, timeout_seconds=self.timeout_seconds)
                raise LLMTimeoutError(self.timeout_seconds) from exc
            except httpx.HTTPError as exc:
                metrics.record_llm_call(model, "transport_error", time.perf_counter() - start)
                logger.error("llm_request_failed", model=model, error=str(exc))
                raise LLMProviderError(f"request failed: {exc}") from exc

        duration = time.perf_counter() - start
        if response.status_code >= 400:
            metrics.record_llm_call(model, "http_error", duration)
            logger.error(
                "llm_api_error",
                model=model,
                status=response.status_code,
                error=response.text[:500],
            )
            raise LLMProviderError(
                f"API error: {response.status_code}", status_code=response.status_code
            )

        try:
            completion = self._parse_completion(response.json(), model)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            metrics.record_llm_call(model, "malformed", duration)
            raise LLMProviderError("malformed completion response") from exc

        metrics.record_llm_call(model, "blank" if completion.is_blank else "success", duration)
        logger.info(
            "llm_completion_received",
            model=completion.model,
            content_length=len(completion.content),
            total_tokens=completion.total_tokens,
            finish_reason=completion.finish_reason,
        )
        return completion

    @staticmethod
    def _parse_completion(data: dict[str, Any], requested_model: str) -> LLMCompletion:
        choices = data.get("choices") or []
        first = choices[0] if choices else {}
        message = first.get("message") or {}
        usage = data.get("usage") or {}
        total = usage.get("total_tokens")
        return LLMCompletion(
            content=message.get("content") or "",
            model=data.get("model") or requested_model,
            total_tokens=int(total) if total is not None else None,
            finish_reason=first.get("finish_reason"),
        )
