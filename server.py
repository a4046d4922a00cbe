
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from yad2_agent import ChatRegistry, QuerySynthesizer, RealEstateConversation, SessionStore, Yad2FeedClient
from yad2_agent.channels import QueueChannel
from yad2_agent.config import LOG_FORMAT, LOG_LEVEL, require_credentials
from yad2_agent.models import CancelCommand, FreeTextMessage, Navigation, NavigationAction, UserEvent

logging.basicConfig(level=logging.getLevelName(LOG_LEVEL.upper()), format=LOG_FORMAT)
logger = logging.getLogger(__name__)


class ChatEvent(BaseModel):
    type: Literal["text", "next", "like", "dislike", "cancel"]
    text: Optional[str] = None

    def to_user_event(self) -> UserEvent:
        if self.type == "cancel":
            return CancelCommand()
        if self.type == "text":
            return FreeTextMessage(self.text or "")
        return NavigationAction(Navigation(self.type))


class ChatReply(BaseModel):
    messages: List[Dict[str, Any]]
    state: str
    finished: bool


# Built on startup, once credentials are known to be present.
registry: Optional[ChatRegistry] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global registry
    require_credentials()
    synthesizer = QuerySynthesizer()
    fetcher = Yad2FeedClient()
    store = SessionStore()

    def new_conversation(chat_id: str, channel: QueueChannel) -> RealEstateConversation:
        return RealEstateConversation(chat_id, channel, synthesizer, fetcher, store)

    registry = ChatRegistry(new_conversation)
    logger.info("Chat registry ready")
    try:
        yield
    finally:
        await registry.close()
        registry = None


app = FastAPI(title="Yad2 Real Estate Assistant", lifespan=lifespan)

# Enable CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify the exact origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/chats/{chat_id}/events", response_model=ChatReply)
async def chat_event(chat_id: str, event: ChatEvent) -> ChatReply:
    if registry is None:
        raise HTTPException(status_code=503, detail="Assistant is not ready")
    try:
        result = await registry.dispatch(chat_id, event.to_user_event())
    except Exception as e:
        logger.exception("Conversation for chat %s failed", chat_id)
        raise HTTPException(status_code=500, detail=str(e))
    return ChatReply(messages=result.messages, state=result.state, finished=result.finished)


@app.get("/")
async def root():
    return {"status": "Yad2 assistant API is running", "docs": "/docs"}


@app.get("/health")
async def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
