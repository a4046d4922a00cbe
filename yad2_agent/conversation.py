"""Real-estate search conversation.

Flow per query cycle:
1. Prompt for a free-text description and wait for it
2. QuerySynthesizer -> structured query, ListingFetcher -> listings
3. PaginationController presents listings one at a time until the user
   cancels or runs out of listings

Entry points: RealEstateConversation.run()
"""

import logging
from enum import Enum
from typing import Optional, Sequence

from .channels import CANCEL_COMMAND, Channel
from .config import GOOGLE_MAPS_API_KEY
from .errors import FetchError, PresentationError, SynthesisError
from .fetcher import AbstractListingClient, Yad2FeedClient
from .formatter import format_listing
from .models import (
    CancelCommand,
    FreeTextMessage,
    ListingItem,
    Navigation,
    NavigationAction,
    SearchSession,
    UserEvent,
)
from .sessions import SessionStore
from .synthesizer import QuerySynthesizer

logger = logging.getLogger(__name__)

PROMPT_MESSAGE = f"📝 Please describe the real estate you are looking for, or type {CANCEL_COMMAND} to exit."
QUERY_GUIDANCE_MESSAGE = f"✍️ Please describe what you are looking for in your own words, or type {CANCEL_COMMAND} to exit."
ACTION_GUIDANCE_MESSAGE = f"🤖 Please use the provided buttons or type {CANCEL_COMMAND} to exit."
NO_RESULTS_MESSAGE = "😔 No real estate listings found for your criteria.\n🔍 Search URL: {search_url}"
FOUND_MESSAGE = '🎉 Found <b>{count}</b> listings for you! 🏡\n🔗 <a href="{search_url}">View on Yad2</a>'
NO_MORE_MESSAGE = "🚫 No more listings available."
EXIT_MESSAGE = "❌ Exiting real estate search."
SYNTHESIS_FAILED_MESSAGE = "⚠️ Sorry, I couldn't understand that request. Please try describing it differently."
FETCH_FAILED_MESSAGE = "⚠️ Sorry, I couldn't reach the listings right now. Please try again later."
PRESENTATION_FAILED_MESSAGE = "⚠️ Error displaying this listing. Press Next to continue or type /cancel to exit."
REACTION_MESSAGES = {
    Navigation.LIKE: "You liked this listing 👍",
    Navigation.DISLIKE: "You disliked this listing 👎",
}


class ConversationState(str, Enum):
    AWAITING_QUERY = "awaiting_query"
    PRESENTING = "presenting"
    AWAITING_ACTION = "awaiting_action"
    EXHAUSTED = "exhausted"
    EXITED = "exited"


class PaginationController:
    """Owns one chat's SearchSession and walks the user through it."""

    def __init__(
        self,
        chat_id: str,
        channel: Channel,
        store: Optional[SessionStore] = None,
        maps_api_key: str = GOOGLE_MAPS_API_KEY,
    ) -> None:
        self.chat_id = chat_id
        self.channel = channel
        self.store = store if store is not None else SessionStore()
        self.maps_api_key = maps_api_key
        self.state = ConversationState.AWAITING_QUERY

    @property
    def session(self) -> Optional[SearchSession]:
        return self.store.get(self.chat_id)

    async def start(self, items: Sequence[ListingItem], search_url: str) -> None:
        """Open a session over ``items`` and present the first one."""
        if not items:
            await self.channel.reply(NO_RESULTS_MESSAGE.format(search_url=search_url))
            self.state = ConversationState.AWAITING_QUERY
            return

        session = self.store.create(self.chat_id, items, search_url)
        await self.channel.reply(
            FOUND_MESSAGE.format(count=session.total, search_url=search_url),
            html=True,
        )
        await self._present(session)

    async def handle_action(self, event: UserEvent) -> None:
        """React to one event received while a listing is on screen."""
        if self.state is not ConversationState.AWAITING_ACTION:
            raise RuntimeError(f"No listing is awaiting an action (state: {self.state.value})")

        if isinstance(event, CancelCommand):
            await self.exit()
            return

        session = self.session
        if isinstance(event, NavigationAction) and session is not None:
            item = session.current
            session.advance(event.action)
            logger.info(
                "Chat %s: %s on listing %s (%d/%d)",
                self.chat_id,
                event.action.value,
                item.token if item else None,
                session.cursor,
                session.total,
            )
            reaction = REACTION_MESSAGES.get(event.action)
            if reaction:
                await self.channel.reply(reaction)
            await self._present(session)
            return

        await self.channel.reply(ACTION_GUIDANCE_MESSAGE)

    async def exit(self) -> None:
        await self.channel.reply(EXIT_MESSAGE)
        self.store.discard(self.chat_id)
        self.state = ConversationState.EXITED

    async def _present(self, session: SearchSession) -> None:
        self.state = ConversationState.PRESENTING
        if session.exhausted:
            self.state = ConversationState.EXHAUSTED
            logger.info("Chat %s went through all %d listings", self.chat_id, session.total)
            await self.channel.reply(NO_MORE_MESSAGE)
            self.state = ConversationState.AWAITING_QUERY
            return

        try:
            payload = format_listing(session.current, session.cursor, session.total, self.maps_api_key)
        except PresentationError as e:
            logger.warning("Chat %s: cannot present listing %d: %s", self.chat_id, session.cursor, e)
            await self.channel.reply(PRESENTATION_FAILED_MESSAGE)
            self.state = ConversationState.AWAITING_ACTION
            return

        await self.channel.reply_with_media(payload.images)
        await self.channel.reply_with_listing(payload)
        self.state = ConversationState.AWAITING_ACTION


class RealEstateConversation:
    """Prompt -> synthesize -> fetch -> paginate, repeated until the user cancels."""

    def __init__(
        self,
        chat_id: str,
        channel: Channel,
        synthesizer: Optional[QuerySynthesizer] = None,
        fetcher: Optional[AbstractListingClient] = None,
        store: Optional[SessionStore] = None,
        maps_api_key: str = GOOGLE_MAPS_API_KEY,
    ) -> None:
        self.chat_id = chat_id
        self.channel = channel
        self.synthesizer = synthesizer or QuerySynthesizer()
        self.fetcher = fetcher or Yad2FeedClient()
        self.controller = PaginationController(chat_id, channel, store, maps_api_key)

    @property
    def state(self) -> ConversationState:
        return self.controller.state

    @property
    def store(self) -> SessionStore:
        return self.controller.store

    async def run(self) -> None:
        while True:
            await self.channel.reply(PROMPT_MESSAGE)
            event = await self._wait_for_query()
            if isinstance(event, CancelCommand):
                await self.controller.exit()
                return

            await self.handle_query(event.text)
            while self.controller.state is ConversationState.AWAITING_ACTION:
                await self.controller.handle_action(await self.channel.receive())
            if self.controller.state is ConversationState.EXITED:
                return

    async def handle_query(self, text: str) -> None:
        """Run one query cycle for ``text`` and hand the results to the controller."""
        self.store.discard(self.chat_id)
        try:
            query = await self.synthesizer.synthesize(text)
            items = await self.fetcher.fetch(query.api_url)
        except SynthesisError as e:
            logger.warning("Chat %s: query synthesis failed: %s", self.chat_id, e)
            await self.channel.reply(SYNTHESIS_FAILED_MESSAGE)
            return
        except FetchError as e:
            logger.warning("Chat %s: listing fetch failed: %s", self.chat_id, e)
            await self.channel.reply(FETCH_FAILED_MESSAGE)
            return

        await self.controller.start(items, query.search_url)

    async def _wait_for_query(self) -> UserEvent:
        while True:
            event = await self.channel.receive()
            if isinstance(event, CancelCommand):
                return event
            if isinstance(event, FreeTextMessage) and event.text.strip():
                return event
            await self.channel.reply(QUERY_GUIDANCE_MESSAGE)
