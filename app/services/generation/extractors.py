"""
Field extraction for Placid / Make webhook bodies.

Older Make scenarios and the Placid REST webhook name the same values
differently. Each list is tried in order; the first non-empty value wins.
"""
import json
from typing import Any, Callable

Extractor = Callable[[dict[str, Any]], str | None]


def _text(value: Any) -> str | None:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _key(name: str) -> Extractor:
    def extract(body: dict[str, Any]) -> str | None:
        return _text(body.get(name))

    extract.__name__ = f"key_{name}"
    return extract


def _meta_key(name: str) -> Extractor:
    def extract(body: dict[str, Any]) -> str | None:
        meta = body.get("meta")
        return _text(meta.get(name)) if isinstance(meta, dict) else None

    extract.__name__ = f"meta_{name}"
    return extract


def _session_from_object(obj: dict[str, Any]) -> str | None:
    return _text(obj.get("session_id")) or _text(obj.get("sessionId"))


def passthrough_session_id(body: dict[str, Any]) -> str | None:
    """
    passthrough may be an object, a JSON string, or an opaque string.
    A string that is not JSON is taken as the session id itself.
    """
    raw = body.get("passthrough")
    if isinstance(raw, dict):
        return _session_from_object(raw)
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        decoded = json.loads(raw)
    except ValueError:
        return raw.strip()
    if isinstance(decoded, dict):
        return _session_from_object(decoded)
    # JSON scalars ("abc", 123) are the id itself
    return _text(decoded)


IMAGE_URL_EXTRACTORS: list[Extractor] = [
    _key("image_url"),
    _key("storage_path"),
    _key("url"),
]

SESSION_ID_EXTRACTORS: list[Extractor] = [
    _key("session_id"),
    _key("sessionId"),
    _meta_key("session_id"),
    _meta_key("sessionId"),
    passthrough_session_id,
]


def first_match(body: dict[str, Any], extractors: list[Extractor]) -> str | None:
    for extract in extractors:
        value = extract(body)
        if value:
            return value
    return None


def extract_image_url(body: dict[str, Any]) -> str | None:
    return first_match(body, IMAGE_URL_EXTRACTORS)


def extract_session_id(body: dict[str, Any]) -> str | None:
    return first_match(body, SESSION_ID_EXTRACTORS)
