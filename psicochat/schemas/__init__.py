from psicochat.schemas.user import Role, UserProfile, Participant, resolve_display_name
from psicochat.schemas.message import Message, MessageKind, Attachment
from psicochat.schemas.chat import ChatThread, ChatStatus, LastMessage
from psicochat.schemas.contact import Contact

__all__ = [
    "Role", "UserProfile", "Participant", "resolve_display_name",
    "Message", "MessageKind", "Attachment",
    "ChatThread", "ChatStatus", "LastMessage",
    "Contact",
]
