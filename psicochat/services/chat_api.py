import logging
from typing import Any, List, Type, TypeVar

import pydantic

from psicochat.exceptions import RemoteError, ValidationError
from psicochat.schemas.chat import ChatStatus, ChatThread
from psicochat.schemas.message import Message, MessageKind
from psicochat.schemas.user import Participant
from psicochat.services.api_client import ApiClient

logger = logging.getLogger(__name__)

Model = TypeVar("Model", bound=pydantic.BaseModel)


def _parse(model: Type[Model], payload: Any, what: str) -> Model:
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        logger.error(f"Malformed {what} from API: {e}")
        raise RemoteError(f"Malformed {what} in API response") from e


def _parse_list(model: Type[Model], payload: Any, what: str) -> List[Model]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise RemoteError(f"Expected a list of {what} in API response")
    return [_parse(model, item, what) for item in payload]


class ChatApi:
    """Typed wrappers around the chat, psychologist and patient endpoints."""

    def __init__(self, client: ApiClient):
        self.client = client

    # Chats

    async def list_chats(self) -> List[ChatThread]:
        payload = await self.client.get("/chat")
        return _parse_list(ChatThread, payload, "chat")

    async def get_chat(self, chat_id: str) -> ChatThread:
        payload = await self.client.get(f"/chat/{chat_id}")
        return _parse(ChatThread, payload, "chat")

    async def create_or_get_chat(self, psychologist_id: str, patient_id: str) -> ChatThread:
        if not psychologist_id or not patient_id:
            raise ValidationError("Both psychologist and patient ids are required")
        payload = await self.client.post("/chat", {"idPsicologo": psychologist_id, "idPaciente": patient_id})
        return _parse(ChatThread, payload, "chat")

    async def update_chat_status(self, chat_id: str, status: ChatStatus) -> ChatThread:
        payload = await self.client.put(f"/chat/{chat_id}/status", {"estado": status.value})
        return _parse(ChatThread, payload, "chat")

    # Messages

    async def list_messages(self, chat_id: str, page: int = 1, limit: int = 50, order: str = "ASC") -> List[Message]:
        params = {"page": str(page), "limit": str(limit), "order": order}
        payload = await self.client.get(f"/chat/{chat_id}/messages", params=params)
        return _parse_list(Message, payload, "message")

    async def send_text(self, chat_id: str, content: str) -> Message:
        payload = await self.client.post("/chat/messages", {
            "idChat": chat_id,
            "contenido": content,
            "tipoMensaje": MessageKind.TEXT.value,
        })
        return _parse(Message, payload, "message")

    async def send_file(self, chat_id: str, filename: str, content: bytes, mime_type: str) -> Message:
        payload = await self.client.post_form(
            f"/chat/{chat_id}/messages/file",
            data={"idChat": chat_id},
            files={"archivo": (filename, content, mime_type)},
        )
        return _parse(Message, payload, "message")

    async def delete_message(self, message_id: str) -> None:
        await self.client.delete(f"/chat/messages/{message_id}")

    # People

    async def list_patients_of(self, psychologist_id: str) -> List[Participant]:
        payload = await self.client.get(f"/psicologos/{psychologist_id}/pacientes")
        return _parse_list(Participant, payload, "patient")

    async def list_psychologists(self) -> List[Participant]:
        payload = await self.client.get("/psicologos")
        return _parse_list(Participant, payload, "psychologist")

    async def get_psychologist(self, psychologist_id: str) -> Participant:
        payload = await self.client.get(f"/psicologos/{psychologist_id}")
        return _parse(Participant, payload, "psychologist")

    async def get_patient(self, patient_id: str) -> Participant:
        payload = await self.client.get(f"/pacientes/{patient_id}")
        return _parse(Participant, payload, "patient")
