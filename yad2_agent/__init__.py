from .conversation import ConversationState, PaginationController, RealEstateConversation
from .errors import ConfigurationError, FetchError, PresentationError, SynthesisError
from .fetcher import Yad2FeedClient
from .sessions import ChatRegistry, SessionStore
from .synthesizer import QuerySynthesizer

__all__ = [
    "ChatRegistry",
    "ConfigurationError",
    "ConversationState",
    "FetchError",
    "PaginationController",
    "PresentationError",
    "QuerySynthesizer",
    "RealEstateConversation",
    "SessionStore",
    "SynthesisError",
    "Yad2FeedClient",
]
