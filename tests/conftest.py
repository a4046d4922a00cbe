import copy
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from yad2_agent.channels import Channel
from yad2_agent.config import FEED_BASE_URL, SEARCH_BASE_URL
from yad2_agent.fetcher import AbstractListingClient
from yad2_agent.models import ListingItem
from yad2_agent.synthesizer import QUERY_SCHEMA

MARKER = {
    "address": {
        "city": {"text": "תל אביב יפו"},
        "neighborhood": {"text": "הצפון הישן"},
        "street": {"text": "דיזנגוף"},
        "house": {"number": 120, "floor": 3},
        "coords": {"lat": 32.0853, "lon": 34.7818},
    },
    "adType": "private",
    "orderId": 1,
    "price": 1950000,
    "priority": 1,
    "subcategoryId": 1,
    "token": "abc123",
    "additionalDetails": {
        "property": {"text": "דירה"},
        "roomsCount": 3,
        "squareMeter": 75,
    },
    "metaData": {"coverImage": "https://img.yad2.co.il/Pic/abc123.jpg"},
}


def make_marker(token: str = "abc123", **overrides: Any) -> Dict[str, Any]:
    marker = copy.deepcopy(MARKER)
    marker["token"] = token
    marker.update(overrides)
    return marker


def make_items(count: int) -> List[ListingItem]:
    return [ListingItem.model_validate(make_marker(f"tok{i}")) for i in range(count)]


def make_query_payload(category: str = "forsale", query: str = "", **fields: Any) -> Dict[str, Any]:
    """A completion output with every schema key present (null unless given)."""
    payload: Dict[str, Any] = {key: None for key in QUERY_SCHEMA["properties"]}
    payload.update(category=category, subcategory=category)
    payload.update(fields)
    suffix = f"?{query}" if query else ""
    payload["searchUrl"] = f"{SEARCH_BASE_URL}/{category}{suffix}"
    payload["apiUrl"] = f"{FEED_BASE_URL}/{category}/map{suffix}"
    return payload


class FakeCompletions:
    """Stands in for ``AsyncOpenAI().chat.completions``."""

    def __init__(self, content: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.content = content
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(role="assistant", content=self.content)
        return SimpleNamespace(id="chatcmpl-test", choices=[SimpleNamespace(message=message)])


def fake_openai(payload: Any = None, error: Optional[Exception] = None) -> SimpleNamespace:
    content = payload if isinstance(payload, str) or payload is None else json.dumps(payload)
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(content, error)))


class FakeFetcher(AbstractListingClient):
    def __init__(self, items: Optional[List[ListingItem]] = None, error: Optional[Exception] = None) -> None:
        self.items = items or []
        self.error = error
        self.urls: List[str] = []

    async def fetch(self, api_url: str) -> List[ListingItem]:
        self.urls.append(api_url)
        if self.error is not None:
            raise self.error
        return list(self.items)


class FakeSynthesizer:
    def __init__(self, query: Any = None, error: Optional[Exception] = None) -> None:
        self.query = query
        self.error = error
        self.texts: List[str] = []

    async def synthesize(self, free_text: str) -> Any:
        self.texts.append(free_text)
        if self.error is not None:
            raise self.error
        return self.query


class ScriptedChannel(Channel):
    """Replays a fixed list of events and records every outbound message."""

    def __init__(self, events: List[Any]) -> None:
        self.events = list(events)
        self.sent: List[Dict[str, Any]] = []
        self.received = 0

    async def receive(self) -> Any:
        if not self.events:
            raise AssertionError("conversation asked for more events than scripted")
        self.received += 1
        return self.events.pop(0)

    async def reply(self, text: str, html: bool = False) -> None:
        self.sent.append({"type": "text", "text": text})

    async def reply_with_media(self, images: Any) -> None:
        self.sent.append({"type": "media", "images": list(images)})

    async def reply_with_listing(self, payload: Any) -> None:
        self.sent.append({"type": "listing", "text": payload.text, "payload": payload})

    def texts(self) -> List[str]:
        return [m["text"] for m in self.sent if m["type"] in ("text", "listing")]

    def listings(self) -> List[Any]:
        return [m["payload"] for m in self.sent if m["type"] == "listing"]


@pytest.fixture()
def listing() -> ListingItem:
    return ListingItem.model_validate(make_marker())
