"""
Input validation and sanitization for inbound chat traffic
"""

import json
import re
from typing import Any, Dict, FrozenSet, Optional
from urllib.parse import parse_qsl
from .constants import ALLOWED_TAGS, MAX_MESSAGE_SIZE_BYTES
from .logger import log_security_event

CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')
COMMENT_PATTERN = re.compile(r'<!--.*?(?:-->|$)|<\?.*?(?:\?>|$)', re.DOTALL)
TAG_PATTERN = re.compile(r'<\s*/?\s*([a-zA-Z][a-zA-Z0-9-]*)\b[^<>]*>')
ALLOWED_TAG_NAME_PATTERN = re.compile(r'<\s*([a-zA-Z][a-zA-Z0-9-]*)\s*/?>')


def parse_allowed_tags(allowed: str) -> FrozenSet[str]:
    """
    Parse an allow-list written as "<img><iframe>" into lower-case tag names
    """
    return frozenset(name.lower() for name in ALLOWED_TAG_NAME_PATTERN.findall(allowed or ""))


DEFAULT_ALLOWED_TAGS = parse_allowed_tags(ALLOWED_TAGS)


def sanitize_text(text: Any, allowed_tags: FrozenSet[str] = DEFAULT_ALLOWED_TAGS) -> str:
    """
    Strip markup from message text, keeping allow-listed tags verbatim

    Removal repeats until nothing changes, so fragments that join into a new
    tag once an inner tag is removed are stripped too and the result is
    stable under a second pass.

    Args:
        text: Raw message text
        allowed_tags: Lower-case tag names to keep

    Returns:
        Sanitized text, empty for non-string input
    """
    if not isinstance(text, str):
        return ""

    def _strip(match):
        return match.group(0) if match.group(1).lower() in allowed_tags else ""

    sanitized = CONTROL_CHARS_PATTERN.sub('', text)
    while True:
        stripped = TAG_PATTERN.sub(_strip, COMMENT_PATTERN.sub('', sanitized))
        if stripped == sanitized:
            break
        sanitized = stripped

    return sanitized.strip()


def normalize_id(value: Any) -> Optional[Any]:
    """
    Normalize a user or dialog identifier

    Digit strings become integers so ids read from JSON, sessions and query
    strings compare equal. Empty values, zero and booleans count as missing.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value or None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value else None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        if value.isdigit():
            return int(value) or None
        return value
    return None


def frame_too_large(raw: Any) -> bool:
    """Check an inbound frame against MAX_MESSAGE_SIZE_BYTES"""
    if isinstance(raw, (bytes, bytearray)):
        size = len(raw)
    elif isinstance(raw, str):
        size = len(raw.encode("utf-8"))
    else:
        return False

    if size > MAX_MESSAGE_SIZE_BYTES:
        log_security_event("oversized_message", {"size": size})
        return True
    return False


def parse_message_payload(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Decode a raw inbound frame into a JSON object

    Returns:
        The decoded dict, or None when the frame is not a non-empty JSON object
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None

    if not isinstance(raw, str):
        return None

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return None

    if not isinstance(payload, dict) or not payload:
        return None

    return payload


def extract_session_key(query: Optional[str], param: str) -> str:
    """
    Pull the session key out of a handshake query string

    The named parameter wins; a query carrying only an unnamed or differently
    named pair falls back to the first value.
    """
    if not query:
        return ""

    pairs = parse_qsl(query.lstrip("?"), keep_blank_values=True)
    for name, value in pairs:
        if name == param:
            return value.strip()

    if pairs:
        return pairs[0][1].strip()
    return ""
