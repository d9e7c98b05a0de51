"""Tests for rp_sandbox.llm — HttpLLM and EchoLLM."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from rp_sandbox.llm import EchoLLM, GenerationRequest, HttpLLM, LLMError
from rp_sandbox.models import Settings
from rp_sandbox.tools import CHARACTER_TOOLS


def _request(**kwargs) -> GenerationRequest:
    kwargs.setdefault("model", "gpt-test")
    kwargs.setdefault("prompt", "Brunhild: hello")
    return GenerationRequest(**kwargs)


def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


def _completion(content: str | None = "Hello there.", **message) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content, **message}}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 30, "total_tokens": 150},
    }


# ---------------------------------------------------------------------------
# EchoLLM
# ---------------------------------------------------------------------------

class TestEchoLLM:
    async def test_returns_prompt_unchanged(self) -> None:
        result = await EchoLLM()("character", _request(prompt="hello world"))
        assert result.text == "hello world"
        assert result.tool_calls == []

    async def test_stage_name_ignored(self) -> None:
        llm = EchoLLM()
        a = await llm("character", _request(prompt="x"))
        b = await llm("summarization", _request(prompt="x"))
        assert a == b


# ---------------------------------------------------------------------------
# HttpLLM — request shape
# ---------------------------------------------------------------------------

class TestHttpLLMRequest:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider="openai", api_key="secret")

    async def test_posts_to_chat_completions(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("character", _request())
        assert mock_post.call_args[0][0] == "https://api.openai.com/v1/chat/completions"

    async def test_custom_url_overrides_provider(self) -> None:
        llm = HttpLLM(provider="openai", base_url="http://localhost:8080/v1/")
        mock_post = AsyncMock(return_value=_mock_response(_completion()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("character", _request())
        assert mock_post.call_args[0][0] == "http://localhost:8080/v1/chat/completions"

    async def test_sends_system_and_user_messages(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("character", _request(system="You are Brunhild.", temperature=0.7, top_p=0.9))
        body = mock_post.call_args.kwargs["json"]
        assert body["model"] == "gpt-test"
        assert body["messages"] == [
            {"role": "system", "content": "You are Brunhild."},
            {"role": "user", "content": "Brunhild: hello"},
        ]
        assert body["temperature"] == 0.7
        assert body["top_p"] == 0.9

    async def test_no_system_message_when_empty(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("summarization", _request())
        body = mock_post.call_args.kwargs["json"]
        assert [m["role"] for m in body["messages"]] == ["user"]
        assert "tools" not in body

    async def test_top_k_only_for_providers_that_accept_it(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("character", _request(top_k=40))
        assert "top_k" not in mock_post.call_args.kwargs["json"]

        together = HttpLLM(provider="together", api_key="k")
        with patch("httpx.AsyncClient.post", mock_post):
            await together("character", _request(top_k=40))
        assert mock_post.call_args.kwargs["json"]["top_k"] == 40

    async def test_tools_declared_as_functions(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("character", _request(tools=CHARACTER_TOOLS))
        tools = mock_post.call_args.kwargs["json"]["tools"]
        assert [t["function"]["name"] for t in tools] == [
            "makeNote", "moveToLocation", "labelStranger",
        ]
        assert all(t["type"] == "function" for t in tools)
        assert tools[1]["function"]["parameters"]["required"] == ["locationName"]

    async def test_bearer_token_sent(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion()))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("character", _request())
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer secret"

    def test_from_settings(self) -> None:
        settings = Settings(provider="xai", api_key="k", timeout=30, max_retries=5)
        llm = HttpLLM.from_settings(settings)
        assert llm._base_url == "https://api.x.ai/v1"
        assert llm._timeout == 30
        assert llm._max_retries == 5


# ---------------------------------------------------------------------------
# HttpLLM — response parsing
# ---------------------------------------------------------------------------

class TestHttpLLMResponse:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider="openai", api_key="secret")

    async def test_text_and_usage(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_completion("Welcome, traveller.")))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("character", _request())
        assert result.text == "Welcome, traveller."
        assert result.usage.input_tokens == 120
        assert result.usage.output_tokens == 30
        assert result.usage.total_tokens == 150

    async def test_missing_usage_is_none(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "hi"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("character", _request())
        assert result.usage is None

    async def test_tool_calls_parsed_in_order(self, llm: HttpLLM) -> None:
        body = _completion(None, tool_calls=[
            {"id": "1", "type": "function",
             "function": {"name": "makeNote", "arguments": '{"note": "Tomas owes me."}'}},
            {"id": "2", "type": "function",
             "function": {"name": "moveToLocation", "arguments": '{"locationName": "Market Square"}'}},
        ])
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("character", _request())
        assert result.text == ""
        assert [c.name for c in result.tool_calls] == ["makeNote", "moveToLocation"]
        assert result.tool_calls[0].input == {"note": "Tomas owes me."}
        assert result.tool_calls[1].input == {"locationName": "Market Square"}

    async def test_malformed_arguments_become_none(self, llm: HttpLLM) -> None:
        body = _completion(None, tool_calls=[
            {"function": {"name": "makeNote", "arguments": "{not json"}},
            {"function": {"name": "labelStranger", "arguments": '["Ada"]'}},
        ])
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("character", _request())
        assert [c.input for c in result.tool_calls] == [None, None]

    async def test_reasoning_content(self, llm: HttpLLM) -> None:
        body = _completion("", reasoning_content="She weighs her options.")
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("character", _request())
        assert result.reasoning == "She weighs her options."

    async def test_unexpected_format_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"error": "nope"}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Unexpected response format"):
                await llm("character", _request())


# ---------------------------------------------------------------------------
# HttpLLM — configuration and transport errors
# ---------------------------------------------------------------------------

class TestHttpLLMErrors:
    async def test_missing_api_key(self) -> None:
        llm = HttpLLM(provider="anthropic")
        with pytest.raises(LLMError, match="API key required for provider: anthropic"):
            await llm("character", _request())

    async def test_missing_model(self) -> None:
        llm = HttpLLM(provider="openai", api_key="k")
        with pytest.raises(LLMError, match="No model configured"):
            await llm("character", _request(model=""))

    async def test_unsupported_provider(self) -> None:
        llm = HttpLLM(provider="mystery", api_key="k")
        with pytest.raises(LLMError, match="Unsupported AI provider"):
            await llm("character", _request())

    async def test_retries_server_error_then_succeeds(self) -> None:
        llm = HttpLLM(provider="openai", api_key="k", max_retries=2)
        mock_post = AsyncMock(side_effect=[
            _mock_response({}, status=503),
            _mock_response(_completion("Recovered.")),
        ])
        with patch("httpx.AsyncClient.post", mock_post), \
                patch("rp_sandbox.llm.asyncio.sleep", AsyncMock()) as sleep:
            result = await llm("character", _request())
        assert result.text == "Recovered."
        assert mock_post.call_count == 2
        sleep.assert_awaited_once_with(0.5)

    async def test_gives_up_after_max_retries(self) -> None:
        llm = HttpLLM(provider="openai", api_key="k", max_retries=2)
        mock_post = AsyncMock(return_value=_mock_response({}, status=429))
        with patch("httpx.AsyncClient.post", mock_post), \
                patch("rp_sandbox.llm.asyncio.sleep", AsyncMock()):
            with pytest.raises(LLMError, match="HTTP 429"):
                await llm("character", _request())
        assert mock_post.call_count == 3

    async def test_client_error_not_retried(self) -> None:
        llm = HttpLLM(provider="openai", api_key="k")
        mock_post = AsyncMock(return_value=_mock_response({}, status=400))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="HTTP 400"):
                await llm("character", _request())
        assert mock_post.call_count == 1

    async def test_connect_error(self) -> None:
        llm = HttpLLM(provider="openai", base_url="http://localhost:9", max_retries=0)
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect to LLM backend at http://localhost:9"):
                await llm("character", _request())

    async def test_timeout(self) -> None:
        llm = HttpLLM(provider="openai", api_key="k", timeout=5, max_retries=0)
        mock_post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="timed out after 5"):
                await llm("character", _request())
