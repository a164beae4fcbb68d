"""
View state of one signed-in user's chat screen.

The controller translates user actions into resolver, repository and store
calls. Failures never escape an action: they are logged, turned into a
transient notice, and the action returns None (or False).
"""
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional

import httpx

from psicochat.config import Settings, get_settings
from psicochat.exceptions import ChatError
from psicochat.schemas.chat import ChatStatus, ChatThread
from psicochat.schemas.contact import Contact
from psicochat.schemas.message import Message
from psicochat.schemas.user import Role, resolve_display_name
from psicochat.schemas.views import ChatDetailView, ChatHeader, MessageView, ThreadListItem, message_view
from psicochat.services import status as chat_status
from psicochat.services.api_client import ApiClient
from psicochat.services.chat_api import ChatApi
from psicochat.services.contacts import ContactResolver
from psicochat.services.messages import MessageOrder, MessageStore, OutgoingFile, file_category, format_file_size
from psicochat.services.repository import ChatRepository
from psicochat.session import SessionContext, SessionUser

logger = logging.getLogger(__name__)

PEER_CHAT_NOTICE = "La funcionalidad de chat entre psicólogos está en desarrollo"


@dataclass
class Notice:
    level: str  # error | warning | info | success
    text: str
    error: Optional[ChatError] = None


class ChatController:
    MAX_NOTICES = 20

    def __init__(self, session: SessionContext, api: ChatApi, settings: Optional[Settings] = None):
        self.session = session
        self.api = api
        self.settings = settings or get_settings()
        self.resolver = ContactResolver(api)
        self.repository = ChatRepository(api, session, self.resolver)
        self.stores: Dict[str, MessageStore] = {}

        self.active_chat_id: Optional[str] = None
        self.contacts: List[Contact] = []
        self.has_no_chats = False
        self.loading = False
        self.sending = False
        self.uploading = False
        self.last_error: Optional[ChatError] = None
        self.notices: Deque[Notice] = deque(maxlen=self.MAX_NOTICES)
        self._retry: Optional[Callable[[], Awaitable[Any]]] = None

    @classmethod
    def for_token(
        cls,
        token: str,
        user: Optional[Mapping[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        settings: Optional[Settings] = None,
    ) -> "ChatController":
        """Start a session from a bearer token (and the stored user, when the caller has it)."""
        session = SessionContext()
        session.init(token, user)
        settings = settings or get_settings()
        client = ApiClient(session, base_url=settings.api_url, transport=transport)
        return cls(session, ChatApi(client), settings)

    @property
    def viewer(self) -> SessionUser:
        return self.session.user

    @property
    def active_thread(self) -> Optional[ChatThread]:
        if self.active_chat_id is None:
            return None
        return self.repository.cached(self.active_chat_id)

    @property
    def compose_enabled(self) -> bool:
        """The message input is usable only while the open chat is active, whoever is looking."""
        thread = self.active_thread
        return thread is not None and chat_status.accepts_messages(thread.status)

    def store(self, chat_id: str) -> MessageStore:
        chat_id = str(chat_id)
        if chat_id not in self.stores:
            self.stores[chat_id] = MessageStore(chat_id, self.api, self.session, self.repository, self.settings)
        return self.stores[chat_id]

    # Actions

    async def load_threads(self) -> Optional[List[ThreadListItem]]:
        async def action():
            threads = await self.repository.list_threads(self.viewer.id)
            self.has_no_chats = not threads
            return [self.thread_item(t) for t in threads]

        return await self._run(action, "Error al cargar los chats", retry=self.load_threads)

    async def load_contacts(self) -> Optional[List[Contact]]:
        async def action():
            resolution = await self.resolver.resolve(self.viewer.id, self.viewer.role)
            for error in resolution.errors:
                self._notify("warning", f"Lista de contactos incompleta: {error.message}", error)
            self.contacts = resolution.contacts
            return self.contacts

        return await self._run(action, "Error al cargar los contactos", retry=self.load_contacts)

    async def open_chat(self, chat_id: str) -> Optional[ChatDetailView]:
        chat_id = str(chat_id)

        async def action():
            store = self.store(chat_id)
            # Thread detail and messages do not depend on each other
            await asyncio.gather(self.repository.get_thread(chat_id), store.load_messages())
            self.active_chat_id = chat_id
            return self.detail(chat_id)

        return await self._run(action, "Error al cargar el chat", retry=lambda: self.open_chat(chat_id))

    async def load_messages(
        self,
        chat_id: str,
        page: int = 1,
        limit: Optional[int] = None,
        order: MessageOrder = MessageOrder.ASC,
    ) -> Optional[List[MessageView]]:
        async def action():
            await self.store(chat_id).load_messages(page=page, limit=limit, order=order)
            return self.message_views(chat_id)

        return await self._run(
            action, "Error al cargar los mensajes",
            retry=lambda: self.load_messages(chat_id, page, limit, order),
        )

    async def create_or_get(self, psychologist_id: str, patient_id: str) -> Optional[ChatThread]:
        return await self._run(
            lambda: self._open_pair(psychologist_id, patient_id),
            "No se pudo iniciar la conversación",
        )

    async def select_contact(self, contact: Contact) -> Optional[ChatThread]:
        """Start (or reopen) the conversation with a contact from the contact list."""
        async def action():
            viewer = self.viewer
            if viewer.is_psychologist:
                if contact.role == Role.PSYCHOLOGIST:
                    self._notify("info", PEER_CHAT_NOTICE)
                    return None
                return await self._open_pair(viewer.id, contact.id)
            return await self._open_pair(contact.id, viewer.id)

        thread = await self._run(action, "No se pudo iniciar la conversación")
        if thread is not None:
            self._notify("success", "Conversación iniciada")
        return thread

    async def send_text(self, chat_id: str, content: str) -> Optional[Message]:
        async def action():
            self.sending = True
            try:
                return await self.store(chat_id).send_text(content)
            finally:
                self.sending = False

        message = await self._run(action, "Error al enviar el mensaje")
        if message is not None:
            await self._reload_after_send(chat_id)
        return message

    async def send_file(self, chat_id: str, file: OutgoingFile) -> Optional[Message]:
        async def action():
            self.uploading = True
            try:
                return await self.store(chat_id).send_file(file)
            finally:
                self.uploading = False

        message = await self._run(action, "Error al enviar el archivo")
        if message is not None:
            self._notify("success", "Archivo enviado exitosamente")
            await self._reload_after_send(chat_id)
        return message

    async def delete_message(self, chat_id: str, message_id: str) -> bool:
        async def action():
            await self.store(chat_id).delete_message(message_id)
            return True

        deleted = await self._run(action, "Error al eliminar el mensaje")
        if deleted:
            self._notify("success", "Mensaje eliminado")
        return bool(deleted)

    async def change_status(self, chat_id: str, new_status: ChatStatus) -> Optional[ChatThread]:
        thread = await self._run(
            lambda: self.repository.update_status(chat_id, new_status),
            "Error al actualizar el estado del chat",
        )
        if thread is not None:
            self._notify("success", "Estado del chat actualizado")
        return thread

    async def retry(self) -> Any:
        """Re-run the last list load that failed."""
        if self._retry is None:
            return None
        retry, self._retry = self._retry, None
        return await retry()

    def close(self) -> None:
        """Drop every cached chat and end the session."""
        self.repository.clear()
        self.stores.clear()
        self.contacts = []
        self.active_chat_id = None
        self.session.teardown()

    async def logout(self) -> None:
        self.close()

    def take_notices(self) -> List[Notice]:
        notices = list(self.notices)
        self.notices.clear()
        return notices

    # Views

    def thread_item(self, thread: ChatThread) -> ThreadListItem:
        other = self.repository.other_party(thread, self.viewer)
        last = thread.last_message
        return ThreadListItem(
            id=thread.id,
            display_name=other.display_name(),
            email=other.email,
            preview=last.preview if last else "Sin mensajes",
            own_last_message=bool(last and last.sender_id == self.viewer.id),
            last_activity_at=(last.created_at if last and last.created_at else thread.last_activity_at),
            unread_count=thread.unread_count,
            status=thread.status,
        )

    def thread_items(self) -> List[ThreadListItem]:
        return [self.thread_item(t) for t in self.repository.threads]

    def header(self, thread: ChatThread) -> ChatHeader:
        other = self.repository.other_party(thread, self.viewer)
        can_change = self.viewer.is_psychologist and thread.psychologist.id == self.viewer.id
        actions = chat_status.allowed_transitions(thread.status) if can_change else []
        return ChatHeader(
            chat_id=thread.id,
            display_name=other.display_name(),
            email=other.email,
            status=thread.status,
            status_label=thread.status.label,
            last_activity_at=thread.last_activity_at,
            can_change_status=bool(actions),
            status_actions=actions,
            compose_enabled=chat_status.accepts_messages(thread.status),
        )

    def message_view(self, chat_id: str, message: Message) -> MessageView:
        thread = self.repository.cached(chat_id)
        other_name = self.repository.other_party(thread, self.viewer).display_name() if thread else "Usuario"
        if message.sender_id == self.viewer.id:
            sender_name = resolve_display_name(self.viewer.profile)
        elif message.sender is not None:
            sender_name = resolve_display_name(message.sender, default=other_name)
        else:
            sender_name = other_name
        size_label = None
        if message.attachment is not None and message.attachment.size_bytes:
            size_label = format_file_size(message.attachment.size_bytes)
        category = file_category(message.attachment.mime_type) if message.attachment is not None else "file"
        return message_view(message, self.viewer.id, sender_name, size_label, category)

    def message_views(self, chat_id: str) -> List[MessageView]:
        return [self.message_view(chat_id, m) for m in self.store(chat_id).messages]

    def chat_of_message(self, message_id: str) -> Optional[str]:
        for chat_id, store in self.stores.items():
            if store.find(message_id) is not None:
                return chat_id
        return None

    def detail(self, chat_id: str) -> Optional[ChatDetailView]:
        thread = self.repository.cached(chat_id)
        if thread is None:
            return None
        return ChatDetailView(
            header=self.header(thread),
            messages=self.message_views(chat_id),
            has_more=self.store(chat_id).has_more,
        )

    # Internals

    async def _run(
        self,
        action: Callable[[], Awaitable[Any]],
        failure_text: str,
        retry: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> Any:
        self.last_error = None
        self.loading = True
        try:
            return await action()
        except ChatError as e:
            logger.error(f"{failure_text}: {e}")
            self.last_error = e
            self._notify("error", f"{failure_text}: {e.message}", e)
            if retry is not None:
                self._retry = retry
            return None
        finally:
            self.loading = False

    async def _open_pair(self, psychologist_id: str, patient_id: str) -> ChatThread:
        thread = await self.repository.create_or_get(psychologist_id, patient_id)
        self.active_chat_id = thread.id
        self.has_no_chats = False
        return thread

    async def _reload_after_send(self, chat_id: str) -> None:
        try:
            await self.store(chat_id).load_messages()
        except ChatError as e:
            # The send itself succeeded; the list just stays as it is
            logger.warning(f"Could not reload chat {chat_id} after sending: {e}")
            self._notify("warning", "No se pudieron recargar los mensajes", e)

    def _notify(self, level: str, text: str, error: Optional[ChatError] = None) -> None:
        self.notices.append(Notice(level, text, error))
