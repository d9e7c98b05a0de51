"""World endpoints: locations, characters, and world import/export."""

from fastapi import APIRouter, HTTPException

from backend.session import controller
from rp_sandbox import world_io
from rp_sandbox.models import Character, Location
from rp_sandbox.pipeline import TurnInProgressError

from .models import CreateCharacter, CreateLocation, UpdateCharacter, UpdateLocation

router = APIRouter()


@router.get("/world")
async def get_world():
    """Full world with ids (characters and locations)."""
    return controller().world.model_dump(by_alias=True)


@router.get("/world/export")
async def export_world():
    """Portable world export (everything referenced by name)."""
    return world_io.export_world(controller().world)


@router.post("/world/import")
async def import_world(body: dict):
    """Replace the world with an imported one. Clears all chat histories."""
    ctl = controller()
    world = world_io.import_world(body)
    try:
        ctl.replace_world(world)
    except TurnInProgressError as e:
        raise HTTPException(409, str(e))
    return world.model_dump(by_alias=True)


# ── Locations ────────────────────────────────────────────


@router.post("/locations", status_code=201)
async def create_location(body: CreateLocation):
    """Create a new location."""
    ctl = controller()
    try:
        location = ctl.world.add_location(Location(**body.model_dump()))
    except ValueError as e:
        raise HTTPException(409, str(e))
    ctl.persist()
    return location.model_dump(by_alias=True)


@router.patch("/locations/{location_id}")
async def update_location(location_id: str, body: UpdateLocation):
    """Update a location's name, description or exposition."""
    ctl = controller()
    try:
        location = ctl.world.update_location(location_id, body.model_dump(exclude_none=True))
    except ValueError as e:
        raise HTTPException(409, str(e))
    if not location:
        raise HTTPException(404, "Location not found")
    ctl.persist()
    return location.model_dump(by_alias=True)


@router.delete("/locations/{location_id}")
async def delete_location(location_id: str):
    """Delete a location, every character in it, and its chat history."""
    try:
        deleted = controller().delete_location(location_id)
    except TurnInProgressError as e:
        raise HTTPException(409, str(e))
    if not deleted:
        raise HTTPException(404, "Location not found")
    return {"ok": True}


@router.delete("/locations/{location_id}/characters/{character_id}")
async def remove_character_from_location(location_id: str, character_id: str):
    """Take a character out of a location without deleting it."""
    ctl = controller()
    if ctl.is_busy(location_id):
        raise HTTPException(409, "A turn is running in this location")
    if not ctl.world.remove_character_from_location(location_id, character_id):
        raise HTTPException(404, "Character not in location")
    ctl.persist()
    return {"ok": True}


# ── Characters ───────────────────────────────────────────


@router.post("/characters", status_code=201)
async def create_character(body: CreateCharacter):
    """Create a character, placing it in `group_chat_id` if that location exists."""
    ctl = controller()
    if body.group_chat_id and not ctl.world.get_location(body.group_chat_id):
        raise HTTPException(404, "Location not found")
    char = ctl.world.add_character(Character(**body.model_dump()))
    ctl.persist()
    return char.model_dump(by_alias=True)


@router.patch("/characters/{character_id}")
async def update_character(character_id: str, body: UpdateCharacter):
    """Update character fields. Changing `group_chat_id` moves the character."""
    ctl = controller()
    char = ctl.world.get_character(character_id)
    if not char:
        raise HTTPException(404, "Character not found")
    fields = body.model_dump(exclude_none=True)
    if "group_chat_id" in fields and ctl.is_busy(char.group_chat_id):
        raise HTTPException(409, "A turn is running in this character's location")
    try:
        ctl.world.update_character(character_id, fields)
    except ValueError as e:
        raise HTTPException(400, str(e))
    ctl.persist()
    return char.model_dump(by_alias=True)


@router.delete("/characters/{character_id}")
async def delete_character(character_id: str):
    """Delete a character and every relationship pointing at it."""
    ctl = controller()
    char = ctl.world.get_character(character_id)
    if not char:
        raise HTTPException(404, "Character not found")
    if ctl.is_busy(char.group_chat_id):
        raise HTTPException(409, "A turn is running in this character's location")
    ctl.world.delete_character(character_id)
    ctl.persist()
    return {"ok": True}
