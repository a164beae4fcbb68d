from fastapi import APIRouter
from typing import Any
from psicochat.config import get_settings
from psicochat.dependencies import registry
from psicochat.scheduler import scheduler
from psicochat.ws import manager

router = APIRouter()


@router.get("")
async def health() -> Any:
    """Liveness plus a few counters that help after a deploy."""
    return {
        "status": "healthy",
        "apiUrl": get_settings().api_url,
        "sessions": len(registry.controllers()),
        "subscriptions": len(manager.subscriptions()),
        "scheduler": "running" if scheduler.running else "stopped",
    }
