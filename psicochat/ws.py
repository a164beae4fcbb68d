from datetime import datetime
from typing import Dict, List, Optional, Set
from fastapi import WebSocket
import asyncio
import logging

from psicochat.controller import ChatController
from psicochat.exceptions import ChatError
from psicochat.schemas.message import Message

logger = logging.getLogger(__name__)


class Subscription:
    """One browser socket watching one chat on behalf of one session.

    Keeps its own record of what it has pushed; the session's loaded page is never touched.
    """

    def __init__(self, chat_id: str, websocket: WebSocket, controller: ChatController):
        self.chat_id = chat_id
        self.websocket = websocket
        self.controller = controller
        self.seen: Set[str] = set()
        # Anything older than what the subscriber already had is history, not news
        self.cutoff: Optional[datetime] = None

    def prime(self, messages: List[Message]) -> None:
        self.seen.update(m.id for m in messages)
        if messages:
            newest = max(m.created_at for m in messages)
            self.cutoff = newest if self.cutoff is None else max(self.cutoff, newest)

    def unseen(self, messages: List[Message]) -> List[Message]:
        return [
            m for m in messages
            if m.id not in self.seen and (self.cutoff is None or m.created_at >= self.cutoff)
        ]


class ConnectionManager:
    def __init__(self):
        # chat_id -> subscriptions
        self.active_subscriptions: Dict[str, Set[Subscription]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, chat_id: str, websocket: WebSocket, controller: ChatController) -> Subscription:
        subscription = Subscription(chat_id, websocket, controller)
        store = controller.store(chat_id)
        subscription.prime(store.messages)
        try:
            subscription.prime(await store.fetch_latest())
        except ChatError as e:
            logger.warning(f"Could not prime subscription to chat {chat_id}: {e}")

        async with self._lock:
            subs = self.active_subscriptions.get(chat_id)
            if not subs:
                subs = set()
                self.active_subscriptions[chat_id] = subs
            subs.add(subscription)
        return subscription

    async def disconnect(self, subscription: Subscription) -> None:
        async with self._lock:
            subs = self.active_subscriptions.get(subscription.chat_id)
            if not subs:
                return
            subs.discard(subscription)
            if len(subs) == 0:
                self.active_subscriptions.pop(subscription.chat_id, None)

    def subscriptions(self) -> List[Subscription]:
        return [s for subs in self.active_subscriptions.values() for s in subs]

    async def poll(self, subscription: Subscription) -> int:
        """Fetch the newest page and push what the subscriber has not seen yet. Returns the number pushed."""
        controller = subscription.controller
        if not controller.session.is_authenticated:
            await self.disconnect(subscription)
            return 0

        try:
            latest = await controller.store(subscription.chat_id).fetch_latest()
        except ChatError as e:
            logger.warning(f"Polling chat {subscription.chat_id} failed: {e}")
            return 0

        pushed = 0
        for message in subscription.unseen(latest):
            payload = {
                "event": "chat:new_message",
                "chatId": subscription.chat_id,
                "message": controller.message_view(subscription.chat_id, message).model_dump(mode="json"),
            }
            try:
                await subscription.websocket.send_json(payload)
            except Exception:
                logger.info(f"Dropping dead subscription to chat {subscription.chat_id}")
                await self.disconnect(subscription)
                return pushed
            subscription.seen.add(message.id)
            pushed += 1
        return pushed

    async def poll_all(self) -> int:
        results = await asyncio.gather(
            *[self.poll(s) for s in self.subscriptions()],
            return_exceptions=True,
        )
        total = 0
        for result in results:
            if isinstance(result, int):
                total += result
            elif isinstance(result, Exception):
                logger.error(f"Subscription poll failed: {result}")
        return total


manager = ConnectionManager()
