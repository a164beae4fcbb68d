"""
Session context shared by every chat collaborator.

The token and the signed-in user are read once (at login or app start),
normalized, and handed to the resolver, repository and message stores.
Nothing else reads credentials on its own.
"""
import logging
from typing import Any, Dict, Mapping, Optional

from jose import jwt, JWTError
from pydantic import BaseModel, Field

from psicochat.exceptions import InvalidRoleError, NotAuthenticatedError
from psicochat.schemas.user import Role, UserProfile

logger = logging.getLogger(__name__)


class SessionUser(BaseModel):
    id: str
    role: Role
    profile: UserProfile = Field(default_factory=UserProfile)

    @property
    def is_psychologist(self) -> bool:
        return self.role == Role.PSYCHOLOGIST

    @property
    def is_patient(self) -> bool:
        return self.role == Role.PATIENT

    @classmethod
    def from_stored(cls, data: Mapping[str, Any]) -> "SessionUser":
        """Build from the user object the login endpoint returned (`rol` or `role`)."""
        user_id = data.get("id") or data.get("_id")
        if not user_id:
            raise NotAuthenticatedError()
        raw_role = data.get("rol") if data.get("rol") is not None else data.get("role")
        profile = UserProfile.model_validate(data.get("user") or data)
        return cls(id=str(user_id), role=Role.parse(raw_role), profile=profile)

    @classmethod
    def from_token(cls, token: str) -> "SessionUser":
        """Build from the token's own claims. The signature is the backend's business."""
        try:
            claims = jwt.get_unverified_claims(token)
        except JWTError:
            logger.warning("Session token is not a readable JWT")
            raise NotAuthenticatedError()
        data: Dict[str, Any] = dict(claims)
        if not data.get("id") and data.get("sub"):
            data["id"] = data["sub"]
        return cls.from_stored(data)


class SessionContext:
    """Holds the bearer token and the normalized user for one signed-in person."""

    def __init__(self, token: Optional[str] = None, user: Optional[SessionUser] = None):
        self._token = token
        self._user = user

    def init(self, token: str, user: Optional[Mapping[str, Any]] = None) -> SessionUser:
        if not token:
            raise NotAuthenticatedError()
        session_user = SessionUser.from_stored(user) if user else SessionUser.from_token(token)
        self._token = token
        self._user = session_user
        logger.info(f"Session started for {session_user.role.value} {session_user.id}")
        return session_user

    def teardown(self) -> None:
        if self._user is not None:
            logger.info(f"Session ended for {self._user.id}")
        self._token = None
        self._user = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self._token) and self._user is not None

    @property
    def token(self) -> str:
        if not self._token:
            raise NotAuthenticatedError()
        return self._token

    @property
    def user(self) -> SessionUser:
        if self._user is None:
            raise NotAuthenticatedError()
        return self._user

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


__all__ = ["Role", "SessionUser", "SessionContext", "InvalidRoleError"]
