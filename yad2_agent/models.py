# Data models for queries, listings and conversations.
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .config import FEED_BASE_URL, SEARCH_BASE_URL
from .utils import check_query_url


class StructuredQuery(BaseModel):
    """Search filters synthesized from free text, plus the two derived URLs.

    Mirrors the closed completion schema: every key is required (nullable
    where the filter is optional) and unknown keys are rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        strict=True,
        frozen=True,
    )

    category: Literal["rent", "forsale"]
    subcategory: Literal["rent", "forsale"]
    min_price: Optional[int]
    max_price: Optional[int]
    min_rooms: Optional[float]
    max_rooms: Optional[float]
    min_floor: Optional[int]
    max_floor: Optional[int]
    min_square_meter: Optional[float]
    max_square_meter: Optional[float]
    image_only: Optional[bool]
    price_only: Optional[bool]
    settlements: Optional[bool]
    price_dropped: Optional[bool]
    brokerage: Optional[bool]
    new_from_contractor: Optional[bool]
    property_types: Optional[str] = Field(alias="property")  # comma-joined ids, e.g. "1,3,5"
    parking: Optional[bool]
    elevator: Optional[bool]
    air_conditioner: Optional[bool]
    balcony: Optional[bool]
    shelter: Optional[bool]
    bars: Optional[bool]
    warehouse: Optional[bool]
    accessibility: Optional[bool]
    renovated: Optional[bool]
    furniture: Optional[bool]
    asset_exclusive: Optional[bool]
    top_area: Optional[int]
    area: Optional[int]
    city: Optional[int]
    property_condition: Optional[str]  # comma-joined ids, e.g. "1,2"
    search_url: str
    api_url: str

    @model_validator(mode="after")
    def _check_urls(self) -> "StructuredQuery":
        search_pairs = check_query_url(self.search_url, f"{SEARCH_BASE_URL}/{self.category}")
        api_pairs = check_query_url(self.api_url, f"{FEED_BASE_URL}/{self.category}/map")
        if sorted(search_pairs) != sorted(api_pairs):
            raise ValueError("searchUrl and apiUrl carry different query parameters")

        present = {key for key, _ in api_pairs}
        for name, info in type(self).model_fields.items():
            key = info.alias or to_camel(name)
            if getattr(self, name) is None and key in present:
                raise ValueError(f"URL carries {key!r} although its value is null")
        return self


class _FeedModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class TextValue(_FeedModel):
    text: str


class Coordinates(_FeedModel):
    lat: float
    lon: float


class House(_FeedModel):
    number: Optional[Union[int, str]] = None
    floor: Optional[int] = None


class Address(_FeedModel):
    city: TextValue
    coords: Optional[Coordinates] = None
    neighborhood: Optional[TextValue] = None
    street: Optional[TextValue] = None
    house: Optional[House] = None


class ListingDetails(_FeedModel):
    property_type: TextValue = Field(alias="property")
    rooms_count: Optional[float] = None
    square_meter: Optional[float] = None


class ListingMetadata(_FeedModel):
    cover_image: Optional[str] = None


class ListingItem(_FeedModel):
    """One marker from the real-estate feed. Never mutated after parsing."""

    token: str
    price: Optional[int] = None
    address: Address
    additional_details: ListingDetails
    meta_data: ListingMetadata = Field(default_factory=ListingMetadata)
    ad_type: Optional[str] = None
    order_id: Optional[int] = None
    priority: Optional[int] = None
    subcategory_id: Optional[int] = None


class Navigation(str, Enum):
    NEXT = "next"
    LIKE = "like"
    DISLIKE = "dislike"


@dataclass(frozen=True)
class FreeTextMessage:
    text: str


@dataclass(frozen=True)
class NavigationAction:
    action: Navigation


@dataclass(frozen=True)
class CancelCommand:
    pass


UserEvent = Union[FreeTextMessage, NavigationAction, CancelCommand]


@dataclass
class SearchSession:
    """Listings fetched by one query cycle and the cursor into them."""

    items: Tuple[ListingItem, ...]
    search_url: str = ""
    cursor: int = 0
    reactions: Dict[str, Navigation] = field(default_factory=dict)  # token -> like/dislike

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def exhausted(self) -> bool:
        return self.cursor >= self.total

    @property
    def current(self) -> Optional[ListingItem]:
        if self.exhausted:
            return None
        return self.items[self.cursor]

    def advance(self, action: Navigation) -> None:
        """Record the navigation outcome for the current item and move on."""
        item = self.current
        if item is None:
            return
        if action is not Navigation.NEXT:
            self.reactions[item.token] = action
        self.cursor += 1


@dataclass(frozen=True)
class Control:
    """One inline button: either an action callback or an external link."""

    label: str
    action: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class DisplayPayload:
    text: str
    images: Tuple[str, ...]
    controls: Tuple[Tuple[Control, ...], ...]
