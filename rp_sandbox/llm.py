"""LLM client — the text generation capability used by the turn pipeline.

The pipeline injects an LLM callable matching the protocol:

    async def __call__(self, stage: str, request: GenerationRequest) -> GenerationResult: ...

`stage` identifies which pipeline stage is calling ("character",
"summarization"). Implementations use it for logging; model selection is
already resolved into `request.model` by the caller.

Two implementations are provided:

    HttpLLM   — real HTTP client for OpenAI-compatible chat completion
                 endpoints, with tool calling, retries and a timeout.
    EchoLLM   — returns the user prompt back as the generated text. Useful
                 for smoke-testing the pipeline wiring without a model.

Production code builds an HttpLLM from Settings via HttpLLM.from_settings();
the API uses EchoLLM instead when LLM_BACKEND=echo (`main.py --echo`).
Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field

from rp_sandbox.models import Settings, TokenUsage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------

class ToolSpec(BaseModel):
    """A callable tool declared to the model."""

    name: str
    description: str
    input_schema: dict[str, Any]


class ToolCall(BaseModel):
    """One tool invocation made by the model. `input` is None when malformed."""

    name: str
    input: dict[str, Any] | None = None


class GenerationRequest(BaseModel):
    system: str = ""
    prompt: str
    tools: list[ToolSpec] = Field(default_factory=list)
    model: str = ""
    temperature: float | None = None
    top_k: int | None = None
    top_p: float | None = None


class GenerationResult(BaseModel):
    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    reasoning: str = ""
    usage: TokenUsage | None = None


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(self, stage: str, request: GenerationRequest) -> GenerationResult: ...


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

PROVIDER_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com/v1",
    "google": "https://generativelanguage.googleapis.com/v1beta/openai",
    "together": "https://api.together.xyz/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "xai": "https://api.x.ai/v1",
}

# Providers whose OpenAI-compatible endpoints accept a top_k sampling field
_TOP_K_PROVIDERS = {"together", "openrouter"}

_RETRY_DELAY = 0.5


class HttpLLM:
    """Async HTTP client for OpenAI-compatible chat completion backends.

    POST {base_url}/chat/completions with a system + user message pair and
    the declared tools as function tools.
    Response: {"choices": [{"message": {"content", "tool_calls", ...}}], "usage": {...}}

    Args:
        provider:     Provider key, used for the default base URL and error text.
        api_key:      Bearer token. Required unless base_url points at a local server.
        base_url:     Overrides the provider's default base URL.
        timeout:      HTTP timeout in seconds. Defaults to 120.
        max_retries:  Extra attempts for transient failures. Defaults to 2.
    """

    def __init__(
        self,
        provider: str = "openai",
        api_key: str = "",
        base_url: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
    ) -> None:
        self._provider = provider
        self._api_key = api_key
        self._custom_url = bool(base_url)
        self._base_url = (base_url or PROVIDER_URLS.get(provider, "")).rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpLLM:
        return cls(
            provider=settings.provider,
            api_key=settings.api_key,
            base_url=settings.provider_url,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
        )

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _check_config(self, request: GenerationRequest) -> None:
        if not self._api_key and not self._custom_url:
            raise LLMError(f"API key required for provider: {self._provider}")
        if not self._base_url:
            raise LLMError(f"Unsupported AI provider: {self._provider}")
        if not request.model.strip():
            raise LLMError("No model configured")

    def _build_request(self, request: GenerationRequest) -> tuple[str, dict]:
        """Return (url, body) for a chat completion call."""
        url = f"{self._base_url}/chat/completions"
        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.append({"role": "user", "content": request.prompt})
        body: dict[str, Any] = {"model": request.model, "messages": messages}
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.top_p is not None:
            body["top_p"] = request.top_p
        if request.top_k is not None and (self._custom_url or self._provider in _TOP_K_PROVIDERS):
            body["top_k"] = request.top_k
        if request.tools:
            body["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": tool.name,
                        "description": tool.description,
                        "parameters": tool.input_schema,
                    },
                }
                for tool in request.tools
            ]
        return url, body

    def _parse_response(self, data: dict) -> GenerationResult:
        """Extract text, tool calls, reasoning and usage from the response body."""
        choices = data.get("choices")
        if not choices or "message" not in choices[0]:
            raise LLMError("Unexpected response format from chat completion backend")
        message = choices[0]["message"]

        tool_calls: list[ToolCall] = []
        for call in message.get("tool_calls") or []:
            function = call.get("function") or {}
            name = function.get("name")
            if not name:
                continue
            tool_calls.append(ToolCall(name=name, input=_parse_arguments(function.get("arguments"))))

        usage = None
        raw_usage = data.get("usage")
        if raw_usage:
            input_tokens = raw_usage.get("prompt_tokens") or 0
            output_tokens = raw_usage.get("completion_tokens") or 0
            usage = TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=raw_usage.get("total_tokens") or input_tokens + output_tokens,
            )

        return GenerationResult(
            text=message.get("content") or "",
            tool_calls=tool_calls,
            reasoning=message.get("reasoning_content") or message.get("reasoning") or "",
            usage=usage,
        )

    async def _post(self, url: str, body: dict) -> httpx.Response:
        attempt = 0
        while True:
            try:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, json=body, headers=self._headers())
                    resp.raise_for_status()
                return resp
            except httpx.ConnectError as e:
                error = LLMError(f"Cannot connect to LLM backend at {self._base_url}")
                cause: Exception = e
            except httpx.TimeoutException as e:
                error = LLMError(f"LLM backend timed out after {self._timeout}s")
                cause = e
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                error = LLMError(f"LLM backend returned HTTP {status}")
                cause = e
                if status != 429 and status < 500:
                    raise error from e

            if attempt >= self._max_retries:
                raise error from cause
            attempt += 1
            logger.warning("llm call failed (%s), retry %d/%d", error, attempt, self._max_retries)
            await asyncio.sleep(_RETRY_DELAY * 2 ** (attempt - 1))

    async def __call__(self, stage: str, request: GenerationRequest) -> GenerationResult:
        self._check_config(request)
        url, body = self._build_request(request)
        logger.debug(
            "llm call stage=%s url=%s model=%s prompt_len=%d tools=%d",
            stage, url, request.model, len(request.prompt), len(request.tools),
        )
        resp = await self._post(url, body)
        result = self._parse_response(resp.json())
        logger.debug(
            "llm response stage=%s len=%d tool_calls=%d",
            stage, len(result.text), len(result.tool_calls),
        )
        return result


def _parse_arguments(raw: Any) -> dict[str, Any] | None:
    """Tool arguments arrive as a JSON string; anything unparsable becomes None."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Tool call arguments are not valid JSON: %r", raw)
        return None
    return parsed if isinstance(parsed, dict) else None


# ---------------------------------------------------------------------------
# EchoLLM — returns the prompt unchanged; useful for pipeline smoke tests
# ---------------------------------------------------------------------------

class EchoLLM:
    """Returns the user prompt as the generated text. No network calls.

    Lets you verify that the turn wiring (catch-up construction, message
    reconciliation, storage writes) works end-to-end without a running model.
    Never invokes tools. Use StubLLM in tests when you need controlled output.
    """

    async def __call__(self, stage: str, request: GenerationRequest) -> GenerationResult:
        logger.debug("EchoLLM stage=%s prompt_len=%d", stage, len(request.prompt))
        return GenerationResult(text=request.prompt)


# ---------------------------------------------------------------------------
# LLMError — raised by HttpLLM for configuration, connection and protocol failures
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Raised when the LLM backend is misconfigured, unreachable or returns an error."""
