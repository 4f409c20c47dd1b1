import re

from ..config import MESSAGE_MAX_LENGTH

_TAG_RE = re.compile(r"<[^>]*>")
_DANGEROUS_BLOCK_RE = re.compile(r"<(script|style|object|embed|iframe|form)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

SUSPICIOUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"onload=", re.IGNORECASE),
    re.compile(r"onerror=", re.IGNORECASE),
]


def strip_tags(value: str) -> str:
    """Remove markup but keep the text content between tags."""
    without_blocks = _DANGEROUS_BLOCK_RE.sub("", value)
    return _CONTROL_RE.sub("", _TAG_RE.sub("", without_blocks))


def sanitize_text(value: str, max_length: int = MESSAGE_MAX_LENGTH) -> str:
    cleaned = strip_tags(value.strip()).strip()
    if len(cleaned) > max_length:
        raise ValueError(f"Text too long. Maximum {max_length} characters allowed.")
    return cleaned


def validate_message(message: str | None, max_length: int = MESSAGE_MAX_LENGTH) -> str:
    if message is None or not isinstance(message, str):
        raise ValueError("Message content is required")

    trimmed = message.strip()
    if not trimmed:
        raise ValueError("Message cannot be empty")
    if len(trimmed) > max_length:
        raise ValueError(f"Message too long. Maximum {max_length} characters allowed.")
    if any(p.search(trimmed) for p in SUSPICIOUS_PATTERNS):
        raise ValueError("Message contains invalid content")

    cleaned = sanitize_text(trimmed, max_length=max_length)
    if not cleaned:
        raise ValueError("Message cannot be empty")
    return cleaned


def optional_clean(value, max_length: int, field: str) -> str | None:
    if value is None:
        return None
    cleaned = strip_tags(str(value)).strip()
    if not cleaned:
        return None
    if len(cleaned) > max_length:
        raise ValueError(f"{field} must be {max_length} characters or fewer")
    return cleaned
