from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Optional
from datetime import datetime, timezone
import enum

from psicochat.schemas.user import UserProfile


class MessageKind(str, enum.Enum):
    TEXT = "texto"
    IMAGE = "imagen"
    PDF = "pdf"
    DOCUMENT = "documento"
    OTHER_FILE = "archivo"

    @classmethod
    def _missing_(cls, value):
        # Any file type the backend invents later is still a file
        if isinstance(value, str) and value:
            return cls.OTHER_FILE
        return None


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps from the API as UTC so they compare with aware ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Attachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    path: str = Field(alias="rutaArchivo")
    filename: Optional[str] = Field(default=None, alias="nombreArchivo")
    size_bytes: Optional[int] = Field(default=None, alias="tamanoArchivo")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")


_ATTACHMENT_FIELDS = ("rutaArchivo", "nombreArchivo", "tamanoArchivo", "mimeType")


class Message(BaseModel):
    """One chat message. Text messages carry `content`; file messages carry an `attachment`."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    chat_id: str = Field(alias="idChat")
    sender_id: str = Field(alias="idEmisor")
    kind: MessageKind = Field(default=MessageKind.TEXT, alias="tipoMensaje")
    content: Optional[str] = Field(default=None, alias="contenido")
    attachment: Optional[Attachment] = None
    created_at: datetime = Field(alias="createdAt")
    sender: Optional[UserProfile] = Field(default=None, alias="emisor")

    @model_validator(mode="before")
    @classmethod
    def _collect_attachment(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ("id", "idChat", "idEmisor"):
            if data.get(key) is not None:
                data[key] = str(data[key])
        if isinstance(data.get("tipoMensaje"), str):
            data["tipoMensaje"] = MessageKind(data["tipoMensaje"])
        if data.get("attachment") is None and data.get("rutaArchivo"):
            data["attachment"] = {k: data[k] for k in _ATTACHMENT_FIELDS if data.get(k) is not None}
        return data

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def _kind_matches_payload(self) -> "Message":
        if self.kind == MessageKind.TEXT:
            if self.attachment is not None:
                raise ValueError("text message cannot carry an attachment")
            if not self.content:
                raise ValueError("text message without content")
        elif self.attachment is None:
            raise ValueError(f"{self.kind.value} message without attachment")
        return self

    @property
    def is_file(self) -> bool:
        return self.kind != MessageKind.TEXT

    def with_attachment_path(self, path: Optional[str]) -> "Message":
        if self.attachment is None or path is None:
            return self
        return self.model_copy(update={"attachment": self.attachment.model_copy(update={"path": path})})
