from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from typing import List

from psicochat.controller import ChatController
from psicochat.dependencies import SessionRegistry, get_controller, get_registry, security
from psicochat.schemas.views import NoticeView

router = APIRouter()


@router.get("/notices", response_model=List[NoticeView])
async def get_notices(controller: ChatController = Depends(get_controller)):
    """Drain the transient notices collected since the last call."""
    return [NoticeView(level=n.level, text=n.text) for n in controller.take_notices()]


@router.post("/logout")
async def logout(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    sessions: SessionRegistry = Depends(get_registry),
):
    await sessions.remove(credentials.credentials)
    return {"success": True, "message": "Logged out"}
