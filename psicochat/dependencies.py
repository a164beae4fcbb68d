import json
import time
import logging
from collections import OrderedDict
from typing import Callable, List, NoReturn, Optional, Tuple

import httpx
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from psicochat.config import get_settings
from psicochat.controller import ChatController
from psicochat.exceptions import ChatError

logger = logging.getLogger(__name__)

security = HTTPBearer()


class SessionRegistry:
    """One chat controller per bearer token, from first request until logout, idle expiry or eviction.

    Least recently used sessions go first once `max_sessions` is reached.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        idle_seconds: Optional[float] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = get_settings()
        self.transport = transport
        self.idle_seconds = idle_seconds if idle_seconds is not None else settings.session_idle_minutes * 60
        self.max_sessions = max_sessions if max_sessions is not None else settings.max_sessions
        self.clock = clock
        # token -> (controller, last use), least recently used first
        self._controllers: "OrderedDict[str, Tuple[ChatController, float]]" = OrderedDict()

    def get_or_create(self, token: str, user: Optional[dict] = None) -> ChatController:
        self.prune()
        entry = self._controllers.get(token)
        if entry is not None and entry[0].session.is_authenticated:
            controller = entry[0]
        else:
            controller = ChatController.for_token(token, user, transport=self.transport, settings=get_settings())
        self._touch(token, controller)
        while len(self._controllers) > self.max_sessions:
            _, (evicted, _) = self._controllers.popitem(last=False)
            logger.info(f"Evicting least recently used session ({len(self._controllers)} kept)")
            evicted.close()
        return controller

    def get(self, token: str) -> Optional[ChatController]:
        self.prune()
        entry = self._controllers.get(token)
        return entry[0] if entry is not None else None

    async def remove(self, token: str) -> None:
        entry = self._controllers.pop(token, None)
        if entry is not None:
            await entry[0].logout()

    def prune(self) -> int:
        """Drop sessions idle for longer than `idle_seconds` or already torn down. Returns how many went."""
        now = self.clock()
        expired = [
            token for token, (controller, last_used) in self._controllers.items()
            if now - last_used > self.idle_seconds or not controller.session.is_authenticated
        ]
        for token in expired:
            controller, _ = self._controllers.pop(token)
            controller.close()
        if expired:
            logger.info(f"Expired {len(expired)} idle sessions")
        return len(expired)

    def controllers(self) -> List[ChatController]:
        return [controller for controller, _ in self._controllers.values()]

    def _touch(self, token: str, controller: ChatController) -> None:
        self._controllers[token] = (controller, self.clock())
        self._controllers.move_to_end(token)


registry = SessionRegistry()


def get_registry() -> SessionRegistry:
    return registry


def _stored_user(raw: Optional[str]) -> Optional[dict]:
    if not raw:
        return None
    try:
        user = json.loads(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Session-User is not valid JSON")
    if not isinstance(user, dict):
        raise HTTPException(status_code=400, detail="X-Session-User must be a JSON object")
    return user


async def get_controller(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    x_session_user: Optional[str] = Header(default=None),
    sessions: SessionRegistry = Depends(get_registry),
) -> ChatController:
    """Chat controller of the caller's session, created on first use."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        return sessions.get_or_create(credentials.credentials, _stored_user(x_session_user))
    except ChatError as e:
        logger.warning(f"Rejected session: {e}")
        raise credentials_exception


def raise_for_failure(controller: ChatController) -> NoReturn:
    """Turn the error the last controller action recorded into an HTTP error."""
    error = controller.last_error
    if error is None:
        raise HTTPException(status_code=500, detail="Action failed")
    raise HTTPException(status_code=error.status_code, detail=error.message)
