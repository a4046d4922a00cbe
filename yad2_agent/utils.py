"""Utility functions for the Yad2 agent."""
from html import escape
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit


def query_pairs(url: str) -> List[Tuple[str, str]]:
    """Return the query string of ``url`` as (key, value) pairs, in order."""
    return parse_qsl(urlsplit(url).query, keep_blank_values=True)


def url_base(url: str) -> str:
    """Return ``url`` without its query string and fragment."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}{parts.path}".rstrip("/")


def check_query_url(url: str, expected_base: str) -> List[Tuple[str, str]]:
    """Check ``url`` points at ``expected_base`` and return its query pairs.

    Raises ValueError when the path differs or a key is repeated; list-valued
    parameters must arrive as one comma-joined value.
    """
    if url_base(url) != expected_base.rstrip("/"):
        raise ValueError(f"{url!r} does not start with {expected_base!r}")
    pairs = query_pairs(url)
    keys = [key for key, _ in pairs]
    repeated = sorted({key for key in keys if keys.count(key) > 1})
    if repeated:
        raise ValueError(f"{url!r} repeats query parameter(s): {', '.join(repeated)}")
    return pairs


def format_number(value: float) -> str:
    """Render 3.0 as '3' and 3.5 as '3.5'."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def text_or_none(value: Optional[str]) -> Optional[str]:
    """HTML-escape non-empty text; map blanks to None."""
    if value is None or not str(value).strip():
        return None
    return escape(str(value).strip())
