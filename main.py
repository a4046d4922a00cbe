"""Simple CLI entry point for the Yad2 real-estate assistant."""

import asyncio
import logging
import re
from typing import Sequence

from yad2_agent import RealEstateConversation
from yad2_agent.channels import Channel, event_from_text
from yad2_agent.config import LOG_FORMAT, LOG_LEVEL, require_credentials
from yad2_agent.models import DisplayPayload, UserEvent

_TAG = re.compile(r"<[^>]+>")


class ConsoleChannel(Channel):
    """Reads events from stdin and prints replies as plain text."""

    async def receive(self) -> UserEvent:
        try:
            line = await asyncio.to_thread(input, "You: ")
        except (KeyboardInterrupt, EOFError):
            line = "/cancel"
        return event_from_text(line)

    async def reply(self, text: str, html: bool = False) -> None:
        print(f"Agent: {_TAG.sub('', text) if html else text}\n")

    async def reply_with_media(self, images: Sequence[str]) -> None:
        for url in images:
            print(f"[image] {url}")

    async def reply_with_listing(self, payload: DisplayPayload) -> None:
        print(_TAG.sub("", payload.text))
        for row in payload.controls:
            print("  ".join(f"[{c.action}]" if c.action else f"{c.label}: {c.url}" for c in row))
        print()


async def main() -> None:
    require_credentials()
    logging.basicConfig(level=logging.getLevelName(LOG_LEVEL.upper()), format=LOG_FORMAT)

    print("Yad2 assistant is ready. Type next / like / dislike to browse, /cancel to stop.")
    conversation = RealEstateConversation(chat_id="console", channel=ConsoleChannel())
    await conversation.run()
    print("Session ended.")


if __name__ == "__main__":
    asyncio.run(main())
