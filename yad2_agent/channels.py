"""Chat surface the conversation talks through.

A Channel delivers user events in and messages out. Transports (console,
HTTP) implement it; the conversation never sees transport details.
"""
import asyncio
from typing import Any, Dict, List, Sequence

from .models import (
    CancelCommand,
    DisplayPayload,
    FreeTextMessage,
    Navigation,
    NavigationAction,
    UserEvent,
)

CANCEL_COMMAND = "/cancel"


def event_from_text(text: str) -> UserEvent:
    """Map a raw chat line to a UserEvent."""
    stripped = (text or "").strip()
    if stripped == CANCEL_COMMAND:
        return CancelCommand()
    try:
        return NavigationAction(Navigation(stripped.lower()))
    except ValueError:
        return FreeTextMessage(stripped)


def payload_to_dict(payload: DisplayPayload) -> Dict[str, Any]:
    """Convert a DisplayPayload to a JSON-serializable dict."""
    return {
        "type": "listing",
        "text": payload.text,
        "parse_mode": "HTML",
        "controls": [
            [
                {key: value for key, value in (("label", c.label), ("action", c.action), ("url", c.url)) if value}
                for c in row
            ]
            for row in payload.controls
        ],
    }


class Channel:
    """Interface for chat transports."""
    async def receive(self) -> UserEvent:
        #Suspend until the user sends the next event
        raise NotImplementedError

    async def reply(self, text: str, html: bool = False) -> None:
        raise NotImplementedError

    async def reply_with_media(self, images: Sequence[str]) -> None:
        raise NotImplementedError

    async def reply_with_listing(self, payload: DisplayPayload) -> None:
        raise NotImplementedError


class QueueChannel(Channel):
    """In-memory channel: events are pushed in, replies collect in an outbox.

    ``idle`` is set whenever the conversation is suspended waiting for input,
    which lets a caller deliver one event and collect everything the
    conversation said in response.
    """

    def __init__(self) -> None:
        self._events: "asyncio.Queue[UserEvent]" = asyncio.Queue()
        self._outbox: List[Dict[str, Any]] = []
        self.idle = asyncio.Event()

    async def receive(self) -> UserEvent:
        self.idle.set()
        event = await self._events.get()
        self.idle.clear()
        return event

    def deliver(self, event: UserEvent) -> None:
        self.idle.clear()
        self._events.put_nowait(event)

    def drain(self) -> List[Dict[str, Any]]:
        """Return and forget everything sent since the last drain."""
        messages, self._outbox = self._outbox, []
        return messages

    async def reply(self, text: str, html: bool = False) -> None:
        message: Dict[str, Any] = {"type": "text", "text": text}
        if html:
            message["parse_mode"] = "HTML"
        self._outbox.append(message)

    async def reply_with_media(self, images: Sequence[str]) -> None:
        self._outbox.append({"type": "media", "images": list(images)})

    async def reply_with_listing(self, payload: DisplayPayload) -> None:
        self._outbox.append(payload_to_dict(payload))
