"""Context window and catch-up block construction.

The window is a two-tier view of a location's history: every summary
message (unbounded, in history order) followed by the last N non-summary
messages. Loading placeholders never appear in it. This keeps prompt size
bounded no matter how long the conversation runs.

The catch-up block is what a character actually reads on its turn: the
windowed messages posted since its own last message, rendered as
"{sender}: {text}" lines.
"""

from __future__ import annotations

from rp_sandbox.models import ChatMessage

TURN_CONTEXT_MESSAGES = 12
SUMMARY_CONTEXT_MESSAGES = 15

NO_ACTIVITY_PROMPT = "No one has said anything recently. Take the initiative."

_HIDDEN_FROM_CATCHUP = {"loading", "narration"}


def window_messages(
    messages: list[ChatMessage], max_recent: int = SUMMARY_CONTEXT_MESSAGES
) -> list[ChatMessage]:
    """Return summaries followed by the last `max_recent` non-summary messages."""
    filtered = [m for m in messages if m.type != "loading"]
    summaries = [m for m in filtered if m.type == "summary"]
    others = [m for m in filtered if m.type != "summary"]
    recent = others[-max_recent:] if max_recent > 0 else []
    return summaries + recent


def render_line(message: ChatMessage) -> str:
    if message.type == "director":
        return f"[Director]: {message.text}"
    return f"{message.sender}: {message.text}"


def messages_since_last_turn(
    messages: list[ChatMessage], character_name: str
) -> list[ChatMessage]:
    """Non-summary messages after the character's most recent own message."""
    others = [m for m in messages if m.type != "summary"]
    for i in range(len(others) - 1, -1, -1):
        msg = others[i]
        if msg.sender == character_name and msg.type == "character":
            return others[i + 1:]
    return others


def build_catchup_block(
    messages: list[ChatMessage],
    character_name: str,
    director_nudge: str | None = None,
) -> str:
    """Build the prompt body for a character's turn.

    Never returns an empty string: with nothing to catch up on and no
    nudge, the character is told to take the initiative.
    """
    context = window_messages(messages, TURN_CONTEXT_MESSAGES)
    parts: list[str] = []

    summaries = [m for m in context if m.type == "summary"]
    if summaries:
        joined = "\n\n".join(s.text for s in summaries)
        parts.append(f"[Previous context summary]\n{joined}\n[End of summary]")

    since = messages_since_last_turn(context, character_name)
    lines = "\n".join(
        render_line(m) for m in since if m.type not in _HIDDEN_FROM_CATCHUP
    ).strip()
    if lines:
        parts.append(lines)

    block = "\n\n".join(parts)
    if not block and not director_nudge:
        block = NO_ACTIVITY_PROMPT

    if director_nudge:
        nudge = (
            f"(Director's Nudge: {director_nudge}. Incorporate this into your "
            "character's thoughts and next action.)"
        )
        block = f"{nudge}\n\n{block}" if block else nudge

    # Make sure the player isn't ignored in multi-character scenes
    relevant = [m for m in since if m.type not in _HIDDEN_FROM_CATCHUP and m.type != "director"]
    if relevant and relevant[-1].type == "user":
        block += f"\n\n[{relevant[-1].sender} is talking to you. Respond to them directly.]"

    return block
