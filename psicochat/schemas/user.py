from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Mapping, Optional, Union
import enum

from psicochat.exceptions import InvalidRoleError


class Role(str, enum.Enum):
    PSYCHOLOGIST = "psicologo"
    PATIENT = "paciente"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Normalize a raw role value; anything but the two known roles is an error."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidRoleError(value)


class UserProfile(BaseModel):
    """Public profile fields of a platform user, as the API nests them under `user`."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class Participant(BaseModel):
    """Psychologist or patient record referenced by a chat."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    user: UserProfile = Field(default_factory=UserProfile)
    assigned_psychologist_id: Optional[str] = Field(default=None, alias="idPsicologo")

    @model_validator(mode="before")
    @classmethod
    def _nest_flat_profile(cls, data: Any) -> Any:
        # Some endpoints return the profile fields next to the id instead of under `user`
        if isinstance(data, dict) and "user" not in data:
            profile = {k: data[k] for k in ("first_name", "last_name", "name", "email") if k in data}
            if profile:
                data = {**data, "user": profile}
        if isinstance(data, dict) and data.get("id") is not None:
            data = {**data, "id": str(data["id"])}
        if isinstance(data, dict) and data.get("idPsicologo") is not None:
            data = {**data, "idPsicologo": str(data["idPsicologo"])}
        return data

    @property
    def email(self) -> str:
        return self.user.email or ""

    def display_name(self, default: str = "Usuario") -> str:
        return resolve_display_name(self.user, default=default)


def resolve_display_name(
    profile: Union[UserProfile, Mapping[str, Any], None],
    default: str = "Usuario",
) -> str:
    """Name shown for a person everywhere in the chat.

    "first last" when either part is set, otherwise `name`, otherwise `email`,
    otherwise `default`.
    """
    if profile is None:
        return default
    if isinstance(profile, UserProfile):
        profile = profile.model_dump()

    first_name = (profile.get("first_name") or "").strip()
    last_name = (profile.get("last_name") or "").strip()
    if first_name or last_name:
        return f"{first_name} {last_name}".strip()
    if profile.get("name"):
        return profile["name"]
    if profile.get("email"):
        return profile["email"]
    return default
