"""
Client for an OpenAI-compatible chat completions endpoint.

Every failure is raised as a ``GenerationError`` whose kind tells the caller
what went wrong; the client itself never retries; the pipeline owns retry.
"""

import json
from typing import Any

import httpx

from ..config.settings import GenerationConfig
from ..core.errors import GenerationError, GenerationErrorKind
from ..core.state import GenerationResult
from ..observability.logging import get_logger
from ..observability.tracing import add_span_attributes, trace_span

logger = get_logger(__name__)

_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "quota")


def _mentions_rate_limit(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


def classify_status(status_code: int, body: str) -> GenerationError:
    """Map a non-2xx provider response to a classified error."""
    if status_code == 429 or _mentions_rate_limit(body):
        kind = GenerationErrorKind.RATE_LIMIT
    elif status_code in (408, 504):
        kind = GenerationErrorKind.TIMEOUT
    elif status_code in (401, 403):
        kind = GenerationErrorKind.AUTHENTICATION
    else:
        kind = GenerationErrorKind.PROVIDER
    return GenerationError(kind, detail=f"{status_code} - {body}", status_code=status_code)


class GenerationClient:
    """Sends one prompt and returns the raw completion."""

    def __init__(self, config: GenerationConfig, http_client: httpx.AsyncClient | None = None):
        self.config = config
        self._http_client = http_client
        self._owned_client = http_client is None

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout, connect=self.config.connect_timeout),
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=2),
            )
            self._owned_client = True
        return self._http_client

    async def aclose(self) -> None:
        if self._owned_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_key}",
        }

    def _build_request(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "response_format": {"type": "json_object"},
            "messages": [{"role": "system", "content": prompt}],
            "temperature": self.config.temperature,
        }

    @trace_span("generation.complete")
    async def generate(self, prompt: str) -> GenerationResult:
        """POST the prompt and return the first choice's text."""
        if not self.config.api_key:
            raise GenerationError(GenerationErrorKind.AUTHENTICATION, detail="API key not configured")

        client = self._ensure_client()
        url = f"{self.config.base_url}/chat/completions"
        add_span_attributes(model=self.config.model)

        try:
            response = await client.post(
                url, json=self._build_request(prompt), headers=self._get_headers()
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Generation request timed out: {e!r}")
            raise GenerationError(GenerationErrorKind.TIMEOUT, detail=str(e)) from e
        except httpx.TransportError as e:
            logger.warning(f"Generation request failed to connect: {e!r}")
            raise GenerationError(GenerationErrorKind.CONNECTIVITY, detail=str(e)) from e

        if not response.is_success:
            error = classify_status(response.status_code, response.text)
            logger.error(
                "Generation provider returned an error",
                status=response.status_code,
                kind=error.kind.value,
            )
            raise error

        try:
            payload = response.json()
        except json.JSONDecodeError as e:
            raise GenerationError(
                GenerationErrorKind.PROVIDER, detail="response body is not JSON"
            ) from e
        if not isinstance(payload, dict):
            raise GenerationError(GenerationErrorKind.PROVIDER, detail="unexpected response shape")

        provider_error = payload.get("error")
        if provider_error and not payload.get("choices"):
            message = (
                provider_error.get("message", "")
                if isinstance(provider_error, dict)
                else str(provider_error)
            )
            kind = (
                GenerationErrorKind.RATE_LIMIT
                if _mentions_rate_limit(message)
                else GenerationErrorKind.PROVIDER
            )
            raise GenerationError(kind, detail=message, status_code=response.status_code)

        result = GenerationResult(
            raw_text=self._first_choice_text(payload),
            payload=payload,
            model=payload.get("model"),
            usage=payload.get("usage"),
        )
        logger.info(
            "Generation call succeeded",
            model=result.model,
            response_length=len(result.raw_text),
            has_choices=result.has_choices,
        )
        return result

    @staticmethod
    def _first_choice_text(payload: dict[str, Any]) -> str:
        choices = payload.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return ""
        message = choices[0].get("message") or {}
        content = message.get("content")
        return content if isinstance(content, str) else ""
