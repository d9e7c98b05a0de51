"""Per-location chat endpoints: history, free-text posts, character turns, retry."""

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from backend.session import controller
from rp_sandbox.pipeline import TurnInProgressError, TurnResult

from .models import CharacterTurnBody, PostMessage, RetryBody

router = APIRouter()


def _turn_response(result: TurnResult, location_id: str) -> dict:
    ctl = controller()
    return {
        "messages": [m.model_dump(by_alias=True, exclude_none=True) for m in result.messages],
        "error": result.error,
        "usage": result.usage.model_dump(by_alias=True) if result.usage else None,
        "tokenUsage": ctl.token_usage.get(location_id, 0),
        "summarizationStatus": ctl.summarization_status.get(location_id, "idle"),
        "strangerLabel": ctl.settings.stranger_label,
    }


@router.get("/locations/{location_id}/messages")
async def get_messages(location_id: str):
    """Message history plus the location's token counter and summarization status."""
    ctl = controller()
    if not ctl.world.get_location(location_id):
        raise HTTPException(404, "Location not found")
    return {
        "messages": [
            m.model_dump(by_alias=True, exclude_none=True) for m in ctl.messages(location_id)
        ],
        "tokenUsage": ctl.token_usage.get(location_id, 0),
        "summarizationStatus": ctl.summarization_status.get(location_id, "idle"),
        "busy": ctl.is_busy(location_id),
    }


@router.post("/locations/{location_id}/messages", status_code=201)
async def post_message(location_id: str, body: PostMessage):
    """Post a player or director message. No character responds."""
    ctl = controller()
    if not ctl.world.get_location(location_id):
        raise HTTPException(404, "Location not found")
    try:
        if body.mode == "director":
            msg = ctl.post_director_message(location_id, body.text)
        else:
            msg = ctl.post_user_message(location_id, body.text)
    except TurnInProgressError as e:
        raise HTTPException(409, str(e))
    if msg is None:
        raise HTTPException(400, "Message text is empty")
    return msg.model_dump(by_alias=True, exclude_none=True)


@router.post("/locations/{location_id}/turn")
async def character_turn(location_id: str, body: CharacterTurnBody):
    """Run one character turn, optionally after a player message."""
    ctl = controller()
    try:
        result = await ctl.run_character_turn(
            location_id, body.character_id,
            message=body.message, director_nudge=body.director_nudge,
        )
    except TurnInProgressError as e:
        raise HTTPException(409, str(e))
    if result is None:
        raise HTTPException(404, "Location or character not found")
    return _turn_response(result, location_id)


@router.get("/locations/{location_id}/messages/{message_id}/retry")
async def preview_retry(location_id: str, message_id: str):
    """How many messages retrying this one would discard."""
    count = controller().count_discarded(location_id, message_id)
    if count is None:
        raise HTTPException(404, "No retryable character message with that id")
    return {"discard": count}


@router.post("/locations/{location_id}/messages/{message_id}/retry")
async def retry_message(location_id: str, message_id: str, body: RetryBody):
    """Discard a character message and everything after it, then regenerate it."""
    ctl = controller()
    count = ctl.count_discarded(location_id, message_id)
    if count is None:
        raise HTTPException(404, "No retryable character message with that id")
    if body.confirm != count:
        raise HTTPException(400, f"Retry would discard {count} messages; confirm with that count")
    try:
        result = await ctl.retry_message(location_id, message_id)
    except TurnInProgressError as e:
        raise HTTPException(409, str(e))
    if result is None:
        raise HTTPException(404, "No retryable character message with that id")
    return _turn_response(result, location_id)


@router.get("/chat-history/export")
async def export_chat_history():
    """Export every location's history, keyed by location id with a name map."""
    return controller().export_chat_history()


@router.post("/chat-history/import")
async def import_chat_history(body: dict):
    """Import histories, matching locations by name. Replaces matched histories."""
    try:
        counts = controller().import_chat_history(body)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    except TurnInProgressError as e:
        raise HTTPException(409, str(e))
    return {"imported": counts}
