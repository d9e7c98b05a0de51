"""Conversation summarization.

A location becomes due for summarization once its cumulative input-token
counter reaches TOKEN_THRESHOLD. Summarizing collapses every substantive
message except the last RECENT_MESSAGES_TO_KEEP into one `summary` message;
earlier summaries are folded into the new one by concatenation, and loading
placeholders are carried over untouched.

Resulting history: [new summary] + [recent messages] + [loading messages].

Failures never corrupt history: on any error the input list is returned
unchanged, so summarization can only fail to compress.
"""

from __future__ import annotations

import logging

from rp_sandbox.llm import LLM, GenerationRequest
from rp_sandbox.models import ChatMessage, Settings
from rp_sandbox.prompts import SUMMARY_TEMPLATE, render_prompt

logger = logging.getLogger(__name__)

TOKEN_THRESHOLD = 3000
RECENT_MESSAGES_TO_KEEP = 5
MIN_MESSAGES_TO_SUMMARIZE = 5

SUMMARY_SENDER = "Summary"


def needs_summarization(cumulative_input_tokens: int) -> bool:
    return cumulative_input_tokens >= TOKEN_THRESHOLD


def _render_conversation(messages: list[ChatMessage]) -> str:
    lines = []
    for m in messages:
        prefix = "[Director]" if m.type == "director" else ""
        lines.append(f"{prefix}{m.sender}: {m.text}")
    return "\n".join(lines)


async def summarize_old_messages(
    messages: list[ChatMessage], settings: Settings, llm: LLM
) -> list[ChatMessage]:
    """Replace older messages with a single summary. Returns the new history."""
    summaries = [m for m in messages if m.type == "summary"]
    loading = [m for m in messages if m.type == "loading"]
    actual = [m for m in messages if m.type not in ("loading", "summary")]

    to_summarize = actual[:-RECENT_MESSAGES_TO_KEEP]
    to_keep = actual[-RECENT_MESSAGES_TO_KEEP:]

    if len(to_summarize) < MIN_MESSAGES_TO_SUMMARIZE:
        logger.debug("Only %d messages eligible for summary, skipping", len(to_summarize))
        return messages

    try:
        prompt = render_prompt(SUMMARY_TEMPLATE, {
            "previous_summary": "\n\n".join(s.text for s in summaries),
            "conversation": _render_conversation(to_summarize),
        })
        result = await llm("summarization", GenerationRequest(
            prompt=prompt,
            model=settings.model_for("summarization"),
            temperature=settings.temperature,
            top_k=settings.top_k,
            top_p=settings.top_p,
        ))
    except Exception as e:
        logger.warning("Summarization failed, keeping full history: %s", e)
        return messages

    summary_text = result.text.strip()
    if not summary_text:
        logger.warning("Summarization returned no text, keeping full history")
        return messages

    logger.info(
        "Summarized %d messages (%d prior summaries), kept %d recent",
        len(to_summarize), len(summaries), len(to_keep),
    )
    summary = ChatMessage(type="summary", sender=SUMMARY_SENDER, text=summary_text)
    return [summary, *to_keep, *loading]
