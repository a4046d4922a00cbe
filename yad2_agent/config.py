import os

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY", "")

MODEL_NAME = os.getenv("OPENAI_MODEL", "gpt-4o-2024-08-06")

# Sampling knobs for the query synthesis call. Not user-controllable.
TEMPERATURE = 0.2
TOP_P = 1.0
MAX_TOKENS = 1000
FREQUENCY_PENALTY = 0.0
PRESENCE_PENALTY = 0.0

SEARCH_BASE_URL = os.getenv("YAD2_SEARCH_BASE_URL", "https://www.yad2.co.il/realestate").rstrip("/")
FEED_BASE_URL = os.getenv("YAD2_FEED_BASE_URL", "https://gw.yad2.co.il/realestate-feed").rstrip("/")
LISTING_BASE_URL = os.getenv("YAD2_LISTING_BASE_URL", "https://www.yad2.co.il/realestate/item").rstrip("/")
FEED_TIMEOUT_SECONDS = float(os.getenv("FEED_TIMEOUT_SECONDS", "20"))
CHAT_IDLE_TIMEOUT_SECONDS = float(os.getenv("CHAT_IDLE_TIMEOUT_SECONDS", "3600"))

STATIC_MAP_URL = "https://maps.googleapis.com/maps/api/staticmap"
MAP_ZOOM = 15 # Street level
MAP_SIZE = "600x400"

PARKING_PROPERTY_ID = "30"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def require_credentials() -> None:
    """Fail fast when a credential the bot cannot run without is missing."""
    missing = [
        name
        for name, value in (
            ("OPENAI_API_KEY", OPENAI_API_KEY),
            ("GOOGLE_MAPS_API_KEY", GOOGLE_MAPS_API_KEY),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError(
            "Missing required environment variable(s): " + ", ".join(missing)
        )
