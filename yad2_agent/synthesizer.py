"""Free text to structured Yad2 query via a schema-constrained completion.

One request per query:
1. The closed JSON schema below goes out as a strict ``json_schema`` response format
2. The reply is re-validated locally (StructuredQuery) before anything trusts it

Entry points: QuerySynthesizer.synthesize()
"""

import logging
from typing import Any, Dict, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from .config import (
    FEED_BASE_URL,
    FREQUENCY_PENALTY,
    MAX_TOKENS,
    MODEL_NAME,
    OPENAI_API_KEY,
    PARKING_PROPERTY_ID,
    PRESENCE_PENALTY,
    SEARCH_BASE_URL,
    TEMPERATURE,
    TOP_P,
)
from .errors import SynthesisError
from .models import StructuredQuery

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "Please adhere to the following JSON schema."

SEARCH_URL_EXAMPLE = (
    f"{SEARCH_BASE_URL}/forsale?city=5000&property=1,3,5"
    "&minPrice=1000000&maxPrice=3000000&minRooms=2&maxRooms=5"
)
API_URL_EXAMPLE = (
    f"{FEED_BASE_URL}/forsale/map?city=5000&property=1,3,5"
    "&minPrice=1000000&maxPrice=3000000&minRooms=2&maxRooms=5"
)

PROPERTY_TYPES = {
    "1": "Apartment",
    "3": "Garden Apartment",
    "5": "Private House/Cottage",
    "6": "Roof/Penthouse",
    "7": "Duplex",
    "11": "Housing Unit",
    "25": "Tourism and Vacation",
    PARKING_PROPERTY_ID: "Parking",
    "32": "Agricultural Farm",
    "33": "Lots",
    "39": "Semi-detached House",
    "41": "General",
    "44": "Residential Building",
    "45": "Warehouse",
    "49": "Basement/Parterre",
    "50": "Purchase Group/Right to Property",
    "51": "Triplex",
    "55": "Auxiliary Farm",
    "61": "Sheltered Housing",
}

CITY_CODES = {
    3000: "Jerusalem",
    5000: "Tel Aviv-Yafo",
    4000: "Haifa",
    6400: "Herzliya",
    6900: "Kfar Saba",
    8700: "Ra'anana",
    2600: "Eilat",
    7900: "Petah Tikva",
    8300: "Rishon LeZion",
    6100: "Bnei Brak",
    1200: "Modi'in-Maccabim-Re'ut",
}


def _nullable(json_type: str, description: str) -> Dict[str, Any]:
    return {"type": [json_type, "null"], "description": description}


def _flag(description: str) -> Dict[str, Any]:
    return _nullable("boolean", f"Include only listings {description}. Example: true")


QUERY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "category": {
            "type": "string",
            "enum": ["rent", "forsale"],
            "description": 'Category of the listing, either "rent" or "forsale". Example: "forsale"',
        },
        "subcategory": {
            "type": "string",
            "enum": ["rent", "forsale"],
            "description": 'Same value as category. Example: "forsale"',
        },
        "minPrice": _nullable("integer", "Minimum price in ILS. Example: 1000000"),
        "maxPrice": _nullable("integer", "Maximum price in ILS. Example: 3000000"),
        "minRooms": _nullable("number", "Minimum number of rooms. Example: 2"),
        "maxRooms": _nullable("number", "Maximum number of rooms. Example: 5"),
        "minFloor": _nullable("integer", "Minimum floor level. Example: 1"),
        "maxFloor": _nullable("integer", "Maximum floor level. Example: 10"),
        "minSquareMeter": _nullable("number", "Minimum size in square meters. Example: 60"),
        "maxSquareMeter": _nullable("number", "Maximum size in square meters. Example: 150"),
        "imageOnly": _flag("with images"),
        "priceOnly": _flag("with a stated price"),
        "settlements": _flag("in settlement areas"),
        "priceDropped": _flag("whose price has dropped"),
        "brokerage": _flag("that involve brokerage"),
        "newFromContractor": _flag("that are new from a contractor"),
        "property": _nullable(
            "string",
            'Comma-separated property type IDs as one string. Example: "1,3,5"',
        ),
        "parking": _flag("with a parking spot (as an amenity of the property)"),
        "elevator": _flag("with an elevator"),
        "airConditioner": _flag("with air conditioning"),
        "balcony": _flag("with a balcony"),
        "shelter": _flag("with a shelter or safe room"),
        "bars": _flag("with window bars"),
        "warehouse": _flag("with a storage room"),
        "accessibility": _flag("that are wheelchair accessible"),
        "renovated": _flag("that are renovated"),
        "furniture": _flag("that come furnished"),
        "assetExclusive": _flag("that are exclusive"),
        "topArea": _nullable("integer", "Top area code. Example: 2"),
        "area": _nullable("integer", "Area code. Example: 11"),
        "city": _nullable("integer", "City code. Example: 5000 (Tel Aviv-Yafo)"),
        "propertyCondition": _nullable(
            "string",
            'Comma-separated property condition IDs as one string. Example: "1,2"',
        ),
        "searchUrl": {
            "type": "string",
            "description": f"Human-browsable search URL. Example: {SEARCH_URL_EXAMPLE}",
        },
        "apiUrl": {
            "type": "string",
            "description": f"Feed API URL for the same search. Example: {API_URL_EXAMPLE}",
        },
    },
    "additionalProperties": False,
}
QUERY_SCHEMA["required"] = list(QUERY_SCHEMA["properties"])

RESPONSE_FORMAT: Dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "RealEstateQuerySchema",
        "description": "Schema to structure the real estate query parameters.",
        "schema": QUERY_SCHEMA,
        "strict": True,
    },
}


def _table(rows: Dict[Any, str]) -> str:
    return "\n".join(f"    - {code}: {label}" for code, label in rows.items())


USER_PROMPT_INSTRUCTIONS = (
    "You are a real estate query generator for Yad2. Given the user input below, "
    "generate a JSON object that conforms to the provided schema. Every field must be "
    "present; use null for anything the user did not ask for.\n\n"
    "Special instructions:\n"
    "- If the user is searching for parking (חניה) and does not say whether to rent or "
    "buy, set category to 'rent'.\n"
    "- When parking (חניה) is the main thing the user is looking for, set property to "
    f"'{PARKING_PROPERTY_ID}' (Parking) and leave the parking flag null. Do not treat it as "
    "an apartment feature in that case.\n\n"
    "Property type IDs:\n" + _table(PROPERTY_TYPES) + "\n\n"
    "City codes:\n" + _table(CITY_CODES) + "\n\n"
    "Build both URLs from the same filters:\n"
    f"- searchUrl: {SEARCH_BASE_URL}/{{category}}?<query parameters>\n"
    f"  Example: {SEARCH_URL_EXAMPLE}\n"
    f"- apiUrl: {FEED_BASE_URL}/{{category}}/map?<query parameters>\n"
    f"  Example: {API_URL_EXAMPLE}\n\n"
    "URL rules:\n"
    "- Do not change the order of the path segments; only the query parameters vary.\n"
    "- Both URLs carry exactly the same query parameters with the same values.\n"
    "- Use the schema field names as parameter names.\n"
    "- Write list values such as property or propertyCondition once, comma-separated "
    "(property=1,3,5), never as repeated parameters.\n"
    "- Write true flags as 1.\n"
    "- Do not include undefined or null parameters.\n\n"
)


def build_user_prompt(user_input: str) -> str:
    return f'{USER_PROMPT_INSTRUCTIONS}User input:\n"{user_input.strip()}"\n'


class QuerySynthesizer:
    """Turns a free-text preference into a validated StructuredQuery."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = MODEL_NAME) -> None:
        self._client = client or AsyncOpenAI(api_key=OPENAI_API_KEY)
        self.model = model

    def build_request(self, free_text: str) -> Dict[str, Any]:
        """Return the completion request for ``free_text``."""
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(free_text)},
            ],
            "response_format": RESPONSE_FORMAT,
            "temperature": TEMPERATURE,
            "max_completion_tokens": MAX_TOKENS,
            "top_p": TOP_P,
            "frequency_penalty": FREQUENCY_PENALTY,
            "presence_penalty": PRESENCE_PENALTY,
        }

    async def synthesize(self, free_text: str) -> StructuredQuery:
        """Run one completion and validate its JSON against the closed schema."""
        if not free_text or not free_text.strip():
            raise SynthesisError("Cannot build a query from empty text.")

        try:
            response = await self._client.chat.completions.create(**self.build_request(free_text))
        except OpenAIError as e:
            logger.warning("Completion request failed: %s", e)
            raise SynthesisError(f"Completion request failed: {e}") from e

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices and choices[0].message else None
        if not content:
            raise SynthesisError("Completion service returned no content.")

        try:
            query = StructuredQuery.model_validate_json(content)
        except ValidationError as e:
            logger.warning("Completion output failed validation: %s", e)
            raise SynthesisError(f"Completion output does not match the query schema: {e}") from e

        logger.info("Synthesized %s query: %s", query.category, query.api_url)
        return query
