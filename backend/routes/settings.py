"""Health check, settings and connection check endpoints."""

import httpx
from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from backend.session import controller

from .models import CheckConnectionBody

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.post("/check-connection")
async def check_connection(body: CheckConnectionBody):
    """Quick health check against an OpenAI-compatible provider URL."""
    url = f"{body.provider_url.rstrip('/')}/models"
    headers: dict[str, str] = {}
    if body.api_key:
        headers["Authorization"] = f"Bearer {body.api_key}"
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(url, headers=headers)
            resp.raise_for_status()
        return {"ok": True}
    except httpx.HTTPError:
        return {"ok": False}


@router.get("/settings")
async def get_settings():
    """Get settings (generation parameters, models, profile, stranger label)."""
    return controller().settings.model_dump(by_alias=True)


@router.patch("/settings")
async def update_settings(body: dict):
    """Update settings (partial merge, camelCase keys)."""
    try:
        settings = controller().update_settings(body)
    except ValidationError as e:
        raise HTTPException(400, str(e))
    return settings.model_dump(by_alias=True)
