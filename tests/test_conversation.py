"""Scripted conversations against fake synthesizer, fetcher and channel."""

import asyncio

import httpx
import pytest

from conftest import FakeFetcher, FakeSynthesizer, ScriptedChannel, make_items, make_marker, make_query_payload
from yad2_agent import conversation as conv
from yad2_agent.conversation import ConversationState, PaginationController, RealEstateConversation
from yad2_agent.errors import FetchError, PresentationError, SynthesisError
from yad2_agent.fetcher import Yad2FeedClient
from yad2_agent.models import (
    CancelCommand,
    FreeTextMessage,
    Navigation,
    NavigationAction,
    StructuredQuery,
)
from yad2_agent.sessions import SessionStore

NEXT = NavigationAction(Navigation.NEXT)
LIKE = NavigationAction(Navigation.LIKE)
DISLIKE = NavigationAction(Navigation.DISLIKE)
CANCEL = CancelCommand()


@pytest.fixture()
def query():
    return StructuredQuery.model_validate(
        make_query_payload("forsale", "city=5000&maxRooms=3", city=5000, maxRooms=3)
    )


def _conversation(events, items=None, query=None, synth_error=None, fetch_error=None):
    channel = ScriptedChannel(events)
    synthesizer = FakeSynthesizer(query, synth_error)
    fetcher = FakeFetcher(items, fetch_error)
    store = SessionStore()
    conversation = RealEstateConversation(
        "chat-1", channel, synthesizer, fetcher, store, maps_api_key="test-key"
    )
    return conversation, channel, synthesizer, fetcher


def test_browse_all_listings_then_cancel(query):
    items = make_items(3)
    conversation, channel, synthesizer, fetcher = _conversation(
        [FreeTextMessage("3 rooms in Tel Aviv"), NEXT, LIKE, DISLIKE, CANCEL], items, query
    )

    asyncio.run(conversation.run())

    assert synthesizer.texts == ["3 rooms in Tel Aviv"]
    assert fetcher.urls == [query.api_url]
    listings = channel.listings()
    assert [p.text.splitlines()[-1] for p in listings] == [
        "📄 <b>Listing 1 of 3</b>",
        "📄 <b>Listing 2 of 3</b>",
        "📄 <b>Listing 3 of 3</b>",
    ]
    texts = channel.texts()
    assert conv.NO_MORE_MESSAGE in texts
    assert conv.REACTION_MESSAGES[Navigation.LIKE] in texts
    assert conv.REACTION_MESSAGES[Navigation.DISLIKE] in texts
    assert texts[-1] == conv.EXIT_MESSAGE
    # prompt, then prompt again after running out of listings
    assert texts.count(conv.PROMPT_MESSAGE) == 2
    assert conversation.state is ConversationState.EXITED
    assert len(conversation.store) == 0


def test_each_listing_is_preceded_by_its_images(query):
    conversation, channel, _, _ = _conversation([FreeTextMessage("x"), CANCEL], make_items(1), query)
    asyncio.run(conversation.run())

    kinds = [m["type"] for m in channel.sent]
    media_at = kinds.index("media")
    assert kinds[media_at + 1] == "listing"
    assert len(channel.sent[media_at]["images"]) == 2


def test_zero_results_creates_no_session(query):
    conversation, channel, _, fetcher = _conversation([FreeTextMessage("castle in Eilat"), CANCEL], [], query)

    asyncio.run(conversation.run())

    assert fetcher.urls == [query.api_url]
    assert conv.NO_RESULTS_MESSAGE.format(search_url=query.search_url) in channel.texts()
    assert channel.listings() == []
    assert channel.texts().count(conv.PROMPT_MESSAGE) == 2
    assert len(conversation.store) == 0


def test_synthesis_error_apologizes_and_reprompts():
    conversation, channel, _, fetcher = _conversation(
        [FreeTextMessage("???"), CANCEL], synth_error=SynthesisError("bad json")
    )

    asyncio.run(conversation.run())

    assert fetcher.urls == []
    texts = channel.texts()
    assert texts[:3] == [conv.PROMPT_MESSAGE, conv.SYNTHESIS_FAILED_MESSAGE, conv.PROMPT_MESSAGE]
    assert conversation.state is ConversationState.EXITED


def test_fetch_error_apologizes_and_reprompts(query):
    conversation, channel, _, _ = _conversation(
        [FreeTextMessage("3 rooms"), CANCEL], query=query, fetch_error=FetchError("timeout")
    )

    asyncio.run(conversation.run())

    assert channel.texts()[:3] == [conv.PROMPT_MESSAGE, conv.FETCH_FAILED_MESSAGE, conv.PROMPT_MESSAGE]
    assert len(conversation.store) == 0


def test_cancel_before_any_query():
    conversation, channel, synthesizer, _ = _conversation([CANCEL])

    asyncio.run(conversation.run())

    assert channel.texts() == [conv.PROMPT_MESSAGE, conv.EXIT_MESSAGE]
    assert synthesizer.texts == []
    assert conversation.state is ConversationState.EXITED


def test_navigation_while_awaiting_query_gets_guidance():
    conversation, channel, synthesizer, _ = _conversation([NEXT, FreeTextMessage("  "), CANCEL])

    asyncio.run(conversation.run())

    assert channel.texts().count(conv.QUERY_GUIDANCE_MESSAGE) == 2
    assert synthesizer.texts == []


def test_cancel_while_browsing_stops_processing(query):
    conversation, channel, _, _ = _conversation(
        [FreeTextMessage("3 rooms"), CANCEL, FreeTextMessage("never read")], make_items(3), query
    )

    asyncio.run(conversation.run())

    assert channel.texts()[-1] == conv.EXIT_MESSAGE
    assert conversation.state is ConversationState.EXITED
    assert channel.events == [FreeTextMessage("never read")]
    assert conversation.controller.session is None


def test_free_text_while_browsing_gets_guidance(query):
    conversation, channel, _, _ = _conversation(
        [FreeTextMessage("3 rooms"), FreeTextMessage("cheaper please"), CANCEL], make_items(2), query
    )

    asyncio.run(conversation.run())

    assert conv.ACTION_GUIDANCE_MESSAGE in channel.texts()
    assert len(channel.listings()) == 1


def test_next_on_last_listing_exhausts_without_formatting(monkeypatch):
    calls = []
    real_format = conv.format_listing

    def counting_format(*args, **kwargs):
        calls.append(args[1])
        return real_format(*args, **kwargs)

    monkeypatch.setattr(conv, "format_listing", counting_format)
    channel = ScriptedChannel([])
    controller = PaginationController("chat-1", channel, maps_api_key="k")

    async def scenario():
        await controller.start(make_items(2), "https://example/search")
        await controller.handle_action(NEXT)
        assert controller.session.cursor == 1
        await controller.handle_action(NEXT)

    asyncio.run(scenario())

    assert calls == [0, 1]
    assert controller.session.cursor == 2
    assert controller.state is ConversationState.AWAITING_QUERY
    assert channel.texts()[-1] == conv.NO_MORE_MESSAGE


def test_like_and_dislike_advance_like_next():
    channel = ScriptedChannel([])
    controller = PaginationController("chat-1", channel, maps_api_key="k")

    async def scenario():
        await controller.start(make_items(3), "https://example/search")
        await controller.handle_action(LIKE)
        await controller.handle_action(DISLIKE)

    asyncio.run(scenario())

    session = controller.session
    assert session.cursor == 2
    assert session.reactions == {"tok0": Navigation.LIKE, "tok1": Navigation.DISLIKE}
    assert controller.state is ConversationState.AWAITING_ACTION


def test_presentation_error_keeps_session(monkeypatch):
    def broken_format(*args, **kwargs):
        raise PresentationError("no coordinates")

    monkeypatch.setattr(conv, "format_listing", broken_format)
    channel = ScriptedChannel([])
    controller = PaginationController("chat-1", channel, maps_api_key="k")

    asyncio.run(controller.start(make_items(2), "https://example/search"))

    assert conv.PRESENTATION_FAILED_MESSAGE in channel.texts()
    assert controller.session.cursor == 0
    assert controller.state is ConversationState.AWAITING_ACTION


def test_actions_outside_presentation_are_rejected():
    controller = PaginationController("chat-1", ScriptedChannel([]), maps_api_key="k")
    with pytest.raises(RuntimeError):
        asyncio.run(controller.handle_action(NEXT))


def test_new_query_discards_previous_session(query):
    conversation, _, _, _ = _conversation([], query=query, fetch_error=FetchError("down"))
    conversation.store.create("chat-1", make_items(2))

    asyncio.run(conversation.handle_query("something else"))

    assert "chat-1" not in conversation.store


def test_sessions_are_keyed_by_chat():
    store = SessionStore()
    first = PaginationController("a", ScriptedChannel([]), store, maps_api_key="k")
    second = PaginationController("b", ScriptedChannel([]), store, maps_api_key="k")

    async def scenario():
        await first.start(make_items(3), "u")
        await second.start(make_items(1), "u")
        await first.handle_action(NEXT)

    asyncio.run(scenario())

    assert store.get("a").cursor == 1
    assert store.get("b").cursor == 0


def test_cursor_never_moves_past_the_end():
    store = SessionStore()
    session = store.create("c", make_items(1))
    session.advance(Navigation.NEXT)
    session.advance(Navigation.NEXT)
    assert session.cursor == 1
    assert session.exhausted
    assert session.current is None


def _run_against_feed(events, markers, query):
    """Run a conversation whose listings come from a mocked feed response."""
    channel = ScriptedChannel(events)

    def handler(request):
        return httpx.Response(200, json={"data": {"markers": markers}})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            conversation = RealEstateConversation(
                "chat-1", channel, FakeSynthesizer(query), Yad2FeedClient(client=client),
                SessionStore(), maps_api_key="test-key",
            )
            await conversation.run()
        return conversation

    return asyncio.run(scenario()), channel


def test_unpriced_listing_is_shown_beside_priced_ones(query):
    unpriced = make_marker("unpriced")
    del unpriced["price"]
    del unpriced["additionalDetails"]["squareMeter"]

    _, channel = _run_against_feed(
        [FreeTextMessage("3 rooms"), NEXT, CANCEL], [make_marker("priced"), unpriced], query
    )

    listings = channel.listings()
    assert len(listings) == 2
    assert "💰 <b>Price:</b> 1,950,000 ₪" in listings[0].text
    assert "💰 <b>Price:</b> not stated" in listings[1].text
    assert "📏 <b>Size:</b> not stated" in listings[1].text


def test_unmappable_listing_is_skipped_and_browsing_continues(query):
    no_coords = make_marker("nomap")
    del no_coords["address"]["coords"]
    markers = [no_coords, {"token": "broken"}, make_marker("good")]

    conversation, channel = _run_against_feed(
        [FreeTextMessage("3 rooms"), NEXT, LIKE, CANCEL], markers, query
    )

    texts = channel.texts()
    assert texts[1] == conv.FOUND_MESSAGE.format(count=2, search_url=query.search_url)
    assert texts[2] == conv.PRESENTATION_FAILED_MESSAGE
    listings = channel.listings()
    assert len(listings) == 1
    assert listings[0].text.endswith("Listing 2 of 2</b>")
    assert conv.REACTION_MESSAGES[Navigation.LIKE] in texts
    assert conv.NO_MORE_MESSAGE in texts
    assert conversation.state is ConversationState.EXITED
