import enum
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from psicochat.config import Settings, get_settings
from psicochat.exceptions import (
    ChatNotActiveError,
    EmptyMessageError,
    FileTooLargeError,
    FileTypeNotAllowedError,
    NotMessageSenderError,
    ValidationError,
)
from psicochat.schemas.message import Message, MessageKind
from psicochat.services import status as chat_status
from psicochat.services.chat_api import ChatApi
from psicochat.services.repository import ChatRepository
from psicochat.session import SessionContext

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    # Images
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp",
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    # Text
    "text/plain", "text/csv",
    # Archives
    "application/zip", "application/x-rar-compressed",
})

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


class MessageOrder(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


def api_origin(api_url: str) -> str:
    """Server origin the attachment paths are relative to: the API URL without its /api segment."""
    url = api_url.rstrip("/")
    if url.endswith("/api"):
        url = url[:-len("/api")]
    return url


def absolute_file_url(path: Optional[str], api_url: str) -> Optional[str]:
    if not path:
        return None
    if path.startswith("http"):
        return path
    if not path.startswith("/"):
        path = "/" + path
    return f"{api_origin(api_url)}{path}"


def is_allowed_mime_type(mime_type: Optional[str]) -> bool:
    return mime_type in ALLOWED_MIME_TYPES


def kind_for_mime_type(mime_type: Optional[str]) -> MessageKind:
    """Kind the backend is expected to assign to an upload of this type."""
    if not mime_type:
        return MessageKind.OTHER_FILE
    if mime_type.startswith("image/"):
        return MessageKind.IMAGE
    if mime_type == "application/pdf":
        return MessageKind.PDF
    if "word" in mime_type or "excel" in mime_type or "sheet" in mime_type or mime_type.startswith("text/"):
        return MessageKind.DOCUMENT
    return MessageKind.OTHER_FILE


def file_category(mime_type: Optional[str]) -> str:
    """Icon hint for an attachment: image, pdf, word, spreadsheet, presentation, archive, text or file."""
    if not mime_type:
        return "text"
    if mime_type.startswith("image/"):
        return "image"
    if mime_type == "application/pdf":
        return "pdf"
    if "word" in mime_type:
        return "word"
    if "excel" in mime_type or "sheet" in mime_type:
        return "spreadsheet"
    if "powerpoint" in mime_type or "presentation" in mime_type:
        return "presentation"
    if "zip" in mime_type or "rar" in mime_type:
        return "archive"
    if mime_type.startswith("text/"):
        return "text"
    return "file"


def format_file_size(size_bytes: Optional[int]) -> str:
    if not size_bytes:
        return "0 Bytes"
    value = float(size_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"


@dataclass
class OutgoingFile:
    """A file picked for upload."""
    filename: str
    content: bytes
    mime_type: Optional[str] = None

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path, mime_type: Optional[str] = None) -> "OutgoingFile":
        path = Path(path)
        if mime_type is None:
            mime_type, _ = mimetypes.guess_type(path.name)
        return cls(filename=path.name, content=path.read_bytes(), mime_type=mime_type)


def validate_file(file: OutgoingFile, settings: Optional[Settings] = None) -> None:
    """Type and size gate for uploads. Raises before anything is sent."""
    settings = settings or get_settings()
    if not is_allowed_mime_type(file.mime_type):
        raise FileTypeNotAllowedError(file.mime_type)
    if file.size_bytes > settings.max_file_size_bytes:
        raise FileTooLargeError(file.size_bytes, settings.max_file_size_mb)


class MessageStore:
    """Ordered messages of one chat, with paged loading, sending and deletion."""

    def __init__(
        self,
        chat_id: str,
        api: ChatApi,
        session: SessionContext,
        repository: ChatRepository,
        settings: Optional[Settings] = None,
    ):
        self.chat_id = str(chat_id)
        self.api = api
        self.session = session
        self.repository = repository
        self.settings = settings or get_settings()
        self.messages: List[Message] = []
        self.has_more = False

    async def load_messages(
        self,
        page: int = 1,
        limit: Optional[int] = None,
        order: MessageOrder = MessageOrder.ASC,
    ) -> List[Message]:
        limit = limit or self.settings.message_page_limit
        try:
            order = MessageOrder(order)
        except ValueError:
            raise ValidationError(f"Unknown message order: {order!r}")
        page_messages = await self.api.list_messages(self.chat_id, page=page, limit=limit, order=order.value)

        page_messages = [self._with_absolute_url(m) for m in page_messages]
        page_messages.sort(key=lambda m: m.created_at, reverse=order == MessageOrder.DESC)

        self.messages = page_messages
        self.has_more = len(page_messages) >= limit
        return list(self.messages)

    async def fetch_latest(self) -> List[Message]:
        """Newest page of the chat, oldest first. Leaves the loaded page alone."""
        limit = self.settings.message_page_limit
        latest = await self.api.list_messages(self.chat_id, page=1, limit=limit, order=MessageOrder.DESC.value)
        latest = [self._with_absolute_url(m) for m in latest]
        latest.sort(key=lambda m: m.created_at)
        return latest

    async def send_text(self, content: str) -> Message:
        if not content or not content.strip():
            raise EmptyMessageError()
        await self._ensure_active()

        message = await self.api.send_text(self.chat_id, content)
        self._append(message)
        return message

    async def send_file(self, file: OutgoingFile) -> Message:
        validate_file(file, self.settings)
        await self._ensure_active()

        logger.info(f"Uploading {file.filename} ({format_file_size(file.size_bytes)}) to chat {self.chat_id}")
        message = await self.api.send_file(self.chat_id, file.filename, file.content, file.mime_type)
        message = self._with_absolute_url(message)
        self._append(message)
        return message

    async def delete_message(self, message_id: str) -> None:
        message_id = str(message_id)
        message = self.find(message_id)
        if message is None:
            raise ValidationError(f"Message {message_id} is not loaded in this chat")
        # UX guard only, the backend decides
        if message.sender_id != self.session.user.id:
            raise NotMessageSenderError(message_id)

        await self.api.delete_message(message_id)
        self.messages = [m for m in self.messages if m.id != message_id]

    def find(self, message_id: str) -> Optional[Message]:
        return next((m for m in self.messages if m.id == str(message_id)), None)

    def is_own(self, message: Message) -> bool:
        return message.sender_id == self.session.user.id

    def clear(self) -> None:
        self.messages = []
        self.has_more = False

    async def _ensure_active(self) -> None:
        thread = await self.repository.thread(self.chat_id)
        if not chat_status.accepts_messages(thread.status):
            raise ChatNotActiveError(self.chat_id, thread.status.value)

    def _append(self, message: Message) -> None:
        self.messages.append(message)
        self.repository.record_message(self.chat_id, message)

    def _with_absolute_url(self, message: Message) -> Message:
        if message.attachment is None:
            return message
        return message.with_attachment_path(absolute_file_url(message.attachment.path, self.api.client.base_url))
