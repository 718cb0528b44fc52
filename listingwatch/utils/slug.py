"""Slug normalization for comparing attribute values across spellings.

"Päijät-Häme", "paijat hame" and "PAIJAT-HAME " all normalize to "paijat-hame".
"""
import re
from typing import Any

# Latin-1 accented letters → ASCII base
_ACCENT_MAP = {
    "à": "a", "á": "a", "â": "a", "ã": "a", "ä": "a", "å": "a", "æ": "ae",
    "ç": "c",
    "è": "e", "é": "e", "ê": "e", "ë": "e",
    "ì": "i", "í": "i", "î": "i", "ï": "i",
    "ð": "d", "ñ": "n",
    "ò": "o", "ó": "o", "ô": "o", "õ": "o", "ö": "o", "ø": "o",
    "ù": "u", "ú": "u", "û": "u", "ü": "u",
    "ý": "y", "ÿ": "y", "þ": "th", "ß": "ss",
}
_ACCENT_TABLE = str.maketrans(_ACCENT_MAP)

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^a-z0-9-]")
_DASHES_RE = re.compile(r"-+")


def to_text(value: Any) -> str:
    """Canonical string form of a scalar attribute value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize(value: Any) -> str:
    """
    Normalize a value to a slug matching ^[a-z0-9]+(-[a-z0-9]+)*$ (or "").

    Idempotent: normalize(normalize(x)) == normalize(x).
    """
    text = to_text(value).lower().translate(_ACCENT_TABLE)
    text = _WHITESPACE_RE.sub("-", text)
    text = _DISALLOWED_RE.sub("", text)
    text = _DASHES_RE.sub("-", text)
    return text.strip("-")
