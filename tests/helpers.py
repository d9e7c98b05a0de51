"""Shared test doubles."""

from rp_sandbox.llm import GenerationRequest, GenerationResult, ToolCall
from rp_sandbox.models import ChatMessage, TokenUsage


class StubLLM:
    """Deterministic LLM stand-in for tests.

    Provide a dict mapping stage name → list of responses (in call order).
    A response that is an Exception instance is raised instead of returned.
    Raises if a stage is called more times than responses were provided.
    """

    def __init__(self, responses: dict[str, list]) -> None:
        self._queues: dict[str, list] = {k: list(v) for k, v in responses.items()}
        self.calls: list[tuple[str, GenerationRequest]] = []

    async def __call__(self, stage: str, request: GenerationRequest) -> GenerationResult:
        self.calls.append((stage, request))
        queue = self._queues.get(stage)
        if not queue:
            raise AssertionError(
                f"StubLLM: unexpected call to stage={stage!r} "
                f"(no responses queued). calls so far: {[c[0] for c in self.calls]}"
            )
        response = queue.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def assert_exhausted(self) -> None:
        """Assert every queued response was consumed — catches missing LLM calls."""
        leftover = {k: v for k, v in self._queues.items() if v}
        if leftover:
            raise AssertionError(f"StubLLM: unused responses remain: {leftover}")


def reply(text: str = "", *tools: tuple[str, dict | None], reasoning: str = "",
          input_tokens: int | None = None) -> GenerationResult:
    """Build a GenerationResult: reply("Hi", ("makeNote", {"note": "x"}), input_tokens=50)."""
    usage = None
    if input_tokens is not None:
        usage = TokenUsage(input_tokens=input_tokens, output_tokens=10,
                           total_tokens=input_tokens + 10)
    return GenerationResult(
        text=text,
        tool_calls=[ToolCall(name=name, input=payload) for name, payload in tools],
        reasoning=reasoning,
        usage=usage,
    )


def msg(type: str, sender: str, text: str, char_id: str | None = None) -> ChatMessage:
    return ChatMessage(type=type, sender=sender, text=text, char_id=char_id)


def conversation(n: int) -> list[ChatMessage]:
    """n alternating user/character messages: "line 0", "line 1", ..."""
    out = []
    for i in range(n):
        if i % 2 == 0:
            out.append(msg("user", "Stranger", f"line {i}"))
        else:
            out.append(msg("character", "Brunhild", f"line {i}", "brunhild"))
    return out
