"""FastAPI API endpoints under /api.

Endpoint groups: health/settings/check-connection, world (locations,
characters, import/export), chat (per-location history, player/director
posts, character turns, retry, chat-history import/export).

Character and location ids are opaque; names are only used as keys by the
import/export formats.
"""

from fastapi import APIRouter

from .chat import router as chat_router
from .settings import router as settings_router
from .world import router as world_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(world_router)
router.include_router(chat_router)
