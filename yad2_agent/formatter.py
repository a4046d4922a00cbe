"""Render one listing as a chat message: HTML text, images and buttons."""
from typing import List, Optional
from urllib.parse import urlencode

from .config import GOOGLE_MAPS_API_KEY, LISTING_BASE_URL, MAP_SIZE, MAP_ZOOM, STATIC_MAP_URL
from .errors import PresentationError
from .models import Control, DisplayPayload, ListingItem, Navigation
from .utils import format_number, text_or_none


def build_map_url(lat: float, lon: float, api_key: str = GOOGLE_MAPS_API_KEY) -> str:
    """Static map centred on the listing with a single red marker."""
    center = f"{lat},{lon}"
    params = {
        "center": center,
        "format": "jpg",
        "zoom": MAP_ZOOM,
        "size": MAP_SIZE,
        "markers": f"color:red|{center}",
        "key": api_key,
    }
    return f"{STATIC_MAP_URL}?{urlencode(params, safe=',:|')}"


NOT_STATED = "not stated"


def _or_not_stated(value: Optional[float], unit: str = "") -> str:
    if value is None:
        return NOT_STATED
    return f"{format_number(value)}{unit}"


def listing_url(token: str) -> str:
    return f"{LISTING_BASE_URL}/{token}"


def listing_text(item: ListingItem, index: int, total: int) -> str:
    address = item.address
    details = item.additional_details

    lines = [
        f"🏠 <b>{text_or_none(details.property_type.text) or 'Property'}</b>",
        f"📍 <b>City:</b> {text_or_none(address.city.text) or '-'}",
    ]
    neighborhood = text_or_none(address.neighborhood.text) if address.neighborhood else None
    if neighborhood:
        lines.append(f"🏘️ <b>Neighborhood:</b> {neighborhood}")

    street = text_or_none(address.street.text) if address.street else None
    if street:
        house_number = address.house.number if address.house else None
        if house_number is not None and str(house_number).strip():
            street = f"{street} {text_or_none(str(house_number))}"
        lines.append(f"🛣️ <b>Street:</b> {street}")

    if address.house is not None and address.house.floor is not None:
        lines.append(f"🧱 <b>Floor:</b> {address.house.floor}")

    price = f"{item.price:,} ₪" if item.price is not None else NOT_STATED
    lines += [
        f"💰 <b>Price:</b> {price}",
        f"🛏️ <b>Rooms:</b> {_or_not_stated(details.rooms_count)}",
        f"📏 <b>Size:</b> {_or_not_stated(details.square_meter, ' m²')}",
        f"📄 <b>Listing {index + 1} of {total}</b>",
    ]
    return "\n".join(lines)


def format_listing(
    item: ListingItem,
    index: int,
    total: int,
    maps_api_key: str = GOOGLE_MAPS_API_KEY,
) -> DisplayPayload:
    """Build the display payload for ``item`` shown at ``index`` of ``total``.

    Pure: the same arguments always give an equal payload.
    """
    if not 0 <= index < total:
        raise PresentationError(f"Listing index {index} is outside 0..{total - 1}")

    coords = item.address.coords
    if coords is None:
        raise PresentationError(f"Listing {item.token} has no coordinates for its map")

    images: List[str] = [build_map_url(coords.lat, coords.lon, maps_api_key)]
    if item.meta_data.cover_image:
        images.append(item.meta_data.cover_image)

    controls = (
        (
            Control("➡️ Next", action=Navigation.NEXT.value),
            Control("🔗 View Listing", url=listing_url(item.token)),
        ),
        (
            Control("👍 Like", action=Navigation.LIKE.value),
            Control("👎 Dislike", action=Navigation.DISLIKE.value),
        ),
    )
    return DisplayPayload(text=listing_text(item, index, total), images=tuple(images), controls=controls)
