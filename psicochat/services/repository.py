import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from psicochat.exceptions import ForbiddenPairingError, ValidationError
from psicochat.schemas.chat import ChatStatus, ChatThread, LastMessage
from psicochat.schemas.message import Message
from psicochat.schemas.user import Participant, Role
from psicochat.services import status as chat_status
from psicochat.services.chat_api import ChatApi
from psicochat.services.contacts import ContactResolver
from psicochat.session import SessionContext, SessionUser

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def sort_by_activity(threads: List[ChatThread]) -> List[ChatThread]:
    """Newest activity first; chats that never had any go last."""
    return sorted(threads, key=lambda t: t.last_activity_at or _NEVER, reverse=True)


def other_party(thread: ChatThread, viewer_role: Role) -> Participant:
    """The person shown for a chat, decided by the viewer's role only."""
    if viewer_role == Role.PSYCHOLOGIST:
        return thread.patient
    return thread.psychologist


class ChatRepository:
    """Client-side cache of the current user's chats."""

    def __init__(self, api: ChatApi, session: SessionContext, resolver: ContactResolver):
        self.api = api
        self.session = session
        self.resolver = resolver
        self._threads: Dict[str, ChatThread] = {}

    @property
    def threads(self) -> List[ChatThread]:
        return sort_by_activity(list(self._threads.values()))

    def cached(self, chat_id: str) -> Optional[ChatThread]:
        return self._threads.get(str(chat_id))

    def find_by_pair(self, psychologist_id: str, patient_id: str) -> Optional[ChatThread]:
        pair = (str(psychologist_id), str(patient_id))
        for thread in self._threads.values():
            if thread.pair == pair:
                return thread
        return None

    async def list_threads(self, user_id: Optional[str] = None) -> List[ChatThread]:
        user_id = str(user_id or self.session.user.id)
        threads = await self.api.list_chats()

        mine = [t for t in threads if t.has_participant(user_id)]
        if len(mine) != len(threads):
            logger.warning(f"Ignoring {len(threads) - len(mine)} chats that do not include user {user_id}")

        self._threads = {t.id: t for t in sort_by_activity(mine)}
        return self.threads

    async def get_thread(self, chat_id: str) -> ChatThread:
        thread = await self.api.get_chat(chat_id)
        return self._upsert(thread)

    async def thread(self, chat_id: str) -> ChatThread:
        """Cached thread, fetched on first use."""
        return self.cached(chat_id) or await self.get_thread(chat_id)

    async def create_or_get(self, psychologist_id: str, patient_id: str) -> ChatThread:
        if not psychologist_id or not patient_id:
            raise ValidationError("Both psychologist and patient ids are required")
        psychologist_id, patient_id = str(psychologist_id), str(patient_id)

        existing = self.find_by_pair(psychologist_id, patient_id)
        if existing is not None:
            return existing

        await self._ensure_pairing(self.session.user, psychologist_id, patient_id)

        thread = await self.api.create_or_get_chat(psychologist_id, patient_id)
        logger.info(f"Chat {thread.id} ready for psychologist {psychologist_id} and patient {patient_id}")
        return self._upsert(thread)

    async def update_status(self, chat_id: str, new_status: ChatStatus) -> ChatThread:
        try:
            new_status = ChatStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown chat status: {new_status!r}")
        thread = await self.thread(chat_id)
        user = self.session.user

        if not (user.is_psychologist and thread.psychologist.id == user.id):
            raise ForbiddenPairingError("Only the chat's psychologist can change its status")
        chat_status.ensure_transition(thread.status, new_status)

        updated = await self.api.update_chat_status(thread.id, new_status)
        logger.info(f"Chat {thread.id} status {thread.status.value} -> {updated.status.value}")
        return self._upsert(updated)

    def other_party(self, thread: ChatThread, viewer: Optional[SessionUser] = None) -> Participant:
        viewer = viewer or self.session.user
        return other_party(thread, viewer.role)

    def record_message(self, chat_id: str, message: Message) -> Optional[ChatThread]:
        """Refresh the list summary of a chat after one of our messages was accepted."""
        thread = self.cached(chat_id)
        if thread is None:
            return None
        updated = thread.model_copy(update={
            "last_message": LastMessage.from_message(message),
            "last_activity_at": message.created_at,
        })
        self._threads[updated.id] = updated
        return updated

    def forget(self, chat_id: str) -> None:
        self._threads.pop(str(chat_id), None)

    def clear(self) -> None:
        self._threads.clear()

    def _upsert(self, thread: ChatThread) -> ChatThread:
        self._threads[thread.id] = thread
        return thread

    async def _ensure_pairing(self, user: SessionUser, psychologist_id: str, patient_id: str) -> None:
        if user.is_patient:
            if patient_id != user.id:
                raise ForbiddenPairingError("Patients can only open chats as themselves")
            allowed = {c.id for c in await self.resolver.available_contacts(user.id, user.role)
                       if c.role == Role.PSYCHOLOGIST}
            if psychologist_id not in allowed:
                raise ForbiddenPairingError("You can only chat with your assigned psychologist")
        else:
            if psychologist_id != user.id:
                raise ForbiddenPairingError("Psychologists can only open chats as themselves")
            allowed = {c.id for c in await self.resolver.available_contacts(user.id, user.role)
                       if c.role == Role.PATIENT}
            if patient_id not in allowed:
                raise ForbiddenPairingError("You can only chat with your assigned patients")
