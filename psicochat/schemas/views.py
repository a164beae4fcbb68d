from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from psicochat.schemas.chat import ChatStatus
from psicochat.schemas.message import Message, MessageKind
from psicochat.schemas.user import Role


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split('_')
    return components[0] + ''.join(x.title() for x in components[1:])


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        serialize_by_alias=True,
    )


class ThreadListItem(CamelModel):
    id: str
    display_name: str
    email: str = ""
    preview: str
    own_last_message: bool = False
    last_activity_at: Optional[datetime] = None
    unread_count: int = 0
    status: ChatStatus


class ChatHeader(CamelModel):
    chat_id: str
    display_name: str
    email: str = ""
    status: ChatStatus
    status_label: str
    last_activity_at: Optional[datetime] = None
    can_change_status: bool = False
    status_actions: List[ChatStatus] = Field(default_factory=list)
    compose_enabled: bool = False


class AttachmentView(CamelModel):
    url: str
    filename: Optional[str] = None
    size_label: Optional[str] = None
    category: str = "file"
    mime_type: Optional[str] = None


class MessageView(CamelModel):
    id: str
    chat_id: str
    sender_id: str
    sender_name: str
    kind: MessageKind
    content: Optional[str] = None
    attachment: Optional[AttachmentView] = None
    created_at: datetime
    is_own: bool
    can_delete: bool


class ContactView(CamelModel):
    id: str
    display_name: str
    email: str = ""
    role: Role


class NoticeView(CamelModel):
    level: str
    text: str


class ChatDetailView(CamelModel):
    header: ChatHeader
    messages: List[MessageView]
    has_more: bool = False


class ContactsView(CamelModel):
    contacts: List[ContactView]
    warnings: List[str] = Field(default_factory=list)


def message_view(
    message: Message,
    viewer_id: str,
    sender_name: str,
    size_label: Optional[str],
    category: str = "file",
) -> MessageView:
    attachment = None
    if message.attachment is not None:
        attachment = AttachmentView(
            url=message.attachment.path,
            filename=message.attachment.filename,
            size_label=size_label,
            category=category,
            mime_type=message.attachment.mime_type,
        )
    is_own = message.sender_id == str(viewer_id)
    return MessageView(
        id=message.id,
        chat_id=message.chat_id,
        sender_id=message.sender_id,
        sender_name=sender_name,
        kind=message.kind,
        content=message.content,
        attachment=attachment,
        created_at=message.created_at,
        is_own=is_own,
        can_delete=is_own,
    )
