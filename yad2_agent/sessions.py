"""Per-chat state: search sessions and running conversations."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence

from .channels import QueueChannel
from .config import CHAT_IDLE_TIMEOUT_SECONDS
from .models import ListingItem, SearchSession, UserEvent

if TYPE_CHECKING:
    from .conversation import RealEstateConversation

logger = logging.getLogger(__name__)


class SessionStore:
    """SearchSessions keyed by chat id.

    A session is created when a query returns listings and discarded on
    cancel or when the chat starts a new query.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, SearchSession] = {}

    def create(self, chat_id: str, items: Sequence[ListingItem], search_url: str = "") -> SearchSession:
        session = SearchSession(items=tuple(items), search_url=search_url)
        self._sessions[chat_id] = session
        logger.info("Created search session for chat %s with %d listings", chat_id, session.total)
        return session

    def get(self, chat_id: str) -> Optional[SearchSession]:
        return self._sessions.get(chat_id)

    def discard(self, chat_id: str) -> None:
        if self._sessions.pop(chat_id, None) is not None:
            logger.info("Discarded search session for chat %s", chat_id)

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


@dataclass
class _RunningChat:
    channel: QueueChannel
    conversation: RealEstateConversation
    task: "asyncio.Task[None]"
    last_active: float = 0.0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass
class DispatchResult:
    messages: List[Dict[str, Any]]
    state: str
    finished: bool


class ChatRegistry:
    """One running conversation per chat id, driven one event at a time.

    Chats with no event for ``idle_timeout`` seconds are cancelled and their
    search session discarded on the next dispatch.
    """

    def __init__(
        self,
        factory: Callable[[str, QueueChannel], RealEstateConversation],
        idle_timeout: float = CHAT_IDLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._factory = factory
        self._idle_timeout = idle_timeout
        self._clock = clock
        self._chats: Dict[str, _RunningChat] = {}

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._chats

    async def dispatch(self, chat_id: str, event: UserEvent) -> DispatchResult:
        """Deliver ``event`` to the chat's conversation and collect its replies."""
        self._evict_idle()
        chat = self._chats.get(chat_id)
        if chat is None:
            chat = self._start(chat_id)
            async with chat.lock:
                await self._settle(chat_id, chat)

        async with chat.lock:
            if chat.task.done():
                return DispatchResult(chat.channel.drain(), _state_name(chat.conversation), True)
            chat.last_active = self._clock()
            chat.channel.deliver(event)
            await self._settle(chat_id, chat)
            return DispatchResult(
                chat.channel.drain(),
                _state_name(chat.conversation),
                chat.task.done(),
            )

    def _start(self, chat_id: str) -> _RunningChat:
        channel = QueueChannel()
        conversation = self._factory(chat_id, channel)
        task = asyncio.create_task(conversation.run())
        chat = _RunningChat(channel=channel, conversation=conversation, task=task, last_active=self._clock())
        self._chats[chat_id] = chat
        logger.info("Started conversation for chat %s", chat_id)
        return chat

    def _evict_idle(self) -> None:
        now = self._clock()
        for chat_id, chat in list(self._chats.items()):
            if chat.lock.locked() or now - chat.last_active < self._idle_timeout:
                continue
            del self._chats[chat_id]
            chat.task.cancel()
            chat.conversation.store.discard(chat_id)
            logger.info("Evicted chat %s after %.0fs idle", chat_id, now - chat.last_active)

    async def _settle(self, chat_id: str, chat: _RunningChat) -> None:
        """Wait until the conversation suspends for input again or finishes."""
        waiter = asyncio.ensure_future(chat.channel.idle.wait())
        try:
            await asyncio.wait({waiter, chat.task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
        if chat.task.done():
            self._chats.pop(chat_id, None)
            logger.info("Conversation for chat %s finished", chat_id)
            # Re-raise anything the conversation loop died with.
            chat.task.result()

    async def close(self) -> None:
        """Cancel every running conversation."""
        chats, self._chats = list(self._chats.values()), {}
        for chat in chats:
            chat.task.cancel()
        await asyncio.gather(*(chat.task for chat in chats), return_exceptions=True)


def _state_name(conversation: RealEstateConversation) -> str:
    return conversation.state.value
