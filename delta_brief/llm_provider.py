from __future__ import annotations

import logging
import time
from typing import Dict, List, Protocol, runtime_checkable

import requests

from delta_brief.config import (
    LLM_HTTP_API_KEY,
    LLM_HTTP_BASE_URL,
    LLM_HTTP_MAX_RETRIES,
    LLM_HTTP_MAX_TOKENS,
    LLM_HTTP_MODEL,
    LLM_HTTP_TIMEOUT_SECONDS,
)
from delta_brief.metrics import (
    record_provider_request,
    record_provider_retry,
    record_provider_timeout,
)


logger = logging.getLogger("brief-provider")

Message = Dict[str, str]


class ProviderError(RuntimeError):
    """Base error for generation-service failures. The pipeline never retries these."""


class ProviderTimeoutError(ProviderError):
    """Provider timed out waiting for a completion."""


class ProviderUnavailableError(ProviderError):
    """Provider endpoint unavailable or transport failed."""


class ProviderRateLimitError(ProviderUnavailableError):
    """Provider rejected the request with HTTP 429."""


class ProviderResponseError(ProviderError):
    """Provider returned a malformed or empty response payload."""


@runtime_checkable
class GenerationService(Protocol):
    def complete(self, conversation: List[Message], *, temperature: float | None = None) -> str: ...


def _extract_completion_text(data) -> str:
    if not isinstance(data, dict):
        raise ProviderResponseError("Response payload is not a JSON object")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        raise ProviderResponseError("Response payload has no choices")
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first.get("message"), dict) else {}
    content = message.get("content")
    if content is None:
        # Legacy completions shape.
        content = first.get("text")
    if not isinstance(content, str) or not content.strip():
        raise ProviderResponseError("Empty completion content")
    return content


class HttpCompletionProvider:
    """
    OpenAI-compatible chat completions client.

    Every request carries an explicit timeout. Transport retries are off by
    default (LLM_HTTP_MAX_RETRIES=0); when enabled they only cover timeouts and
    connection errors, never HTTP 4xx responses or malformed payloads.
    """

    name = "http"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        timeout_seconds: int | None = None,
        max_retries: int | None = None,
        max_tokens: int | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or LLM_HTTP_BASE_URL).rstrip("/")
        self.model_name = model or LLM_HTTP_MODEL
        self.api_key = LLM_HTTP_API_KEY if api_key is None else api_key
        self.timeout_seconds = max(1, LLM_HTTP_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds)
        self.max_retries = max(0, LLM_HTTP_MAX_RETRIES if max_retries is None else max_retries)
        self.max_tokens = LLM_HTTP_MAX_TOKENS if max_tokens is None else max_tokens
        self._session = session

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, url: str, payload: dict):
        poster = self._session.post if self._session is not None else requests.post
        return poster(url, json=payload, headers=self._headers(), timeout=self.timeout_seconds)

    def complete(self, conversation: List[Message], *, temperature: float | None = None) -> str:
        payload = {
            "model": self.model_name,
            "messages": [{"role": m["role"], "content": m["content"]} for m in conversation],
            "max_tokens": int(self.max_tokens),
        }
        if temperature is not None:
            payload["temperature"] = float(temperature)
        url = f"{self.base_url}/chat/completions"

        last_error = None
        for attempt in range(self.max_retries + 1):
            t0 = time.perf_counter()
            outcome = "ok"
            completion_tokens = None
            try:
                response = self._post(url, payload)
                if getattr(response, "status_code", None) == 429:
                    outcome = "rate_limited"
                    raise ProviderRateLimitError("Generation service rate limit exceeded (HTTP 429)")
                response.raise_for_status()
                try:
                    data = response.json()
                except ValueError as exc:
                    raise ProviderResponseError(f"Response is not valid JSON: {exc}") from exc
                usage = data.get("usage") if isinstance(data, dict) else None
                if isinstance(usage, dict) and isinstance(usage.get("completion_tokens"), int):
                    completion_tokens = usage["completion_tokens"]
                return _extract_completion_text(data)
            except requests.exceptions.Timeout as exc:
                outcome = "timeout"
                last_error = exc
                record_provider_timeout(self.name, self.model_name)
                if attempt < self.max_retries:
                    record_provider_retry(self.name, self.model_name)
            except requests.exceptions.ConnectionError as exc:
                outcome = "unavailable"
                last_error = exc
                if attempt < self.max_retries:
                    record_provider_retry(self.name, self.model_name)
            except requests.exceptions.RequestException as exc:
                # HTTP error statuses: retrying the same payload will not help.
                outcome = "unavailable"
                raise ProviderUnavailableError(f"Generation service request failed: {exc}") from exc
            except ProviderError:
                if outcome == "ok":
                    outcome = "response_error"
                raise
            finally:
                duration_ms = (time.perf_counter() - t0) * 1000.0
                logger.info(
                    "provider_request provider=%s model=%s attempt=%s outcome=%s duration_ms=%.2f messages=%s completion_tokens=%s",
                    self.name,
                    self.model_name,
                    attempt + 1,
                    outcome,
                    duration_ms,
                    len(conversation),
                    "" if completion_tokens is None else str(completion_tokens),
                )
                record_provider_request(self.name, self.model_name, outcome, duration_ms)

        if isinstance(last_error, requests.exceptions.Timeout):
            raise ProviderTimeoutError(f"Generation service timed out: {last_error}") from last_error
        if last_error is not None:
            raise ProviderUnavailableError(f"Generation service unavailable: {last_error}") from last_error
        raise ProviderUnavailableError("Generation service unavailable")
