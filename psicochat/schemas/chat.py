from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Optional
from datetime import datetime
import enum

from psicochat.schemas.message import Message, MessageKind, as_utc
from psicochat.schemas.user import Participant


class ChatStatus(str, enum.Enum):
    ACTIVE = "activo"
    ARCHIVED = "archivado"
    BLOCKED = "bloqueado"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    ChatStatus.ACTIVE: "Activo",
    ChatStatus.ARCHIVED: "Archivado",
    ChatStatus.BLOCKED: "Bloqueado",
}

PREVIEW_LENGTH = 40

_FILE_PREVIEWS = {
    MessageKind.IMAGE: "Imagen",
    MessageKind.PDF: "Documento PDF",
    MessageKind.DOCUMENT: "Documento",
}


class LastMessage(BaseModel):
    """Denormalized summary of the newest message of a chat, for list rendering."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    kind: MessageKind = Field(default=MessageKind.TEXT, alias="tipoMensaje")
    content: Optional[str] = Field(default=None, alias="contenido")
    sender_id: Optional[str] = Field(default=None, alias="idEmisor")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("idEmisor") is not None:
                data["idEmisor"] = str(data["idEmisor"])
            if isinstance(data.get("tipoMensaje"), str):
                data["tipoMensaje"] = MessageKind(data["tipoMensaje"])
        return data

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def preview(self) -> str:
        if self.kind == MessageKind.TEXT:
            return (self.content or "")[:PREVIEW_LENGTH] or "Mensaje de texto"
        return _FILE_PREVIEWS.get(self.kind, "Archivo adjunto")

    @classmethod
    def from_message(cls, message: Message) -> "LastMessage":
        return cls(
            kind=message.kind,
            content=message.content,
            sender_id=message.sender_id,
            created_at=message.created_at,
        )


class ChatThread(BaseModel):
    """Conversation between exactly one psychologist and one patient."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    status: ChatStatus = Field(default=ChatStatus.ACTIVE, alias="estado")
    psychologist: Participant = Field(alias="psicologo")
    patient: Participant = Field(alias="paciente")
    last_activity_at: Optional[datetime] = Field(default=None, alias="ultimaActividad")
    last_message: Optional[LastMessage] = Field(default=None, alias="ultimoMensaje")
    unread_count: int = Field(default=0, ge=0, alias="mensajesNoLeidos")

    @model_validator(mode="before")
    @classmethod
    def _participants_from_ids(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("id") is not None:
            data["id"] = str(data["id"])
        # Listing endpoints may only send the foreign keys
        if not data.get("psicologo") and data.get("idPsicologo") is not None:
            data["psicologo"] = {"id": data["idPsicologo"]}
        if not data.get("paciente") and data.get("idPaciente") is not None:
            data["paciente"] = {"id": data["idPaciente"]}
        if data.get("mensajesNoLeidos") is None:
            data.pop("mensajesNoLeidos", None)
        return data

    @field_validator("last_activity_at")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @property
    def pair(self) -> tuple[str, str]:
        return self.psychologist.id, self.patient.id

    def has_participant(self, user_id: str) -> bool:
        return str(user_id) in self.pair
