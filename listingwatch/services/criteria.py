"""Saved-criteria model and conversion into the flat form the matcher evaluates.

A watch stores criteria as a JSON list:

    [{"field_path": "hinta", "kind": "range", "values": ["40000", "100000"]},
     {"field_path": "sijainti", "kind": "exact_or_set", "values": ["Helsinki", "Espoo"]},
     {"field_path": "__word_search", "kind": "word_search", "values": ["talo*"]}]

flatten_criteria() turns that into a mapping such as

    {"hinta_min": 40000, "hinta_max": 100000,
     "sijainti": ["Helsinki", "Espoo"],
     "__word_search": WordSearch(terms=("talo*",))}

A second criterion on an already used field is keyed "<field>#2" and is
evaluated as a separate rule on that field.
"""
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from listingwatch.core.exceptions import InvalidCriteria

logger = logging.getLogger(__name__)

KIND_EXACT = "exact_or_set"
KIND_RANGE = "range"
KIND_WORD = "word_search"

# Searches the listing title plus every text leaf of its attributes
WORD_SEARCH_FIELD = "__word_search"

MIN_SUFFIX = "_min"
MAX_SUFFIX = "_max"

# A second criterion on the same field is keyed "<field>#2", a third "<field>#3"
REPEAT_SEP = "#"
_REPEAT_RE = re.compile(r"#\d+$")

# Older payloads use {"name", "label", "values"}
_LEGACY_LABELS = {
    "multiple_choice": KIND_EXACT,
    "checkbox": KIND_EXACT,
    "select": KIND_EXACT,
    "range": KIND_RANGE,
    "word_search": KIND_WORD,
}

_OPERATOR_RE = re.compile(r"^\s*([<>]=?)\s*(.+)$")
_TAG_RE = re.compile(r"^\s*(min|max)\s*[:=]\s*(.+)$", re.IGNORECASE)

NO_CRITERIA_LABEL = "No criteria"


@dataclass(frozen=True)
class WordSearch:
    """Free-text terms; a trailing * makes a term a prefix match."""
    terms: tuple[str, ...]


@dataclass(frozen=True)
class InvalidCriterion:
    """Placeholder for a criterion that could not be converted. Never matches."""
    reason: str


@dataclass
class Criterion:
    field_path: str
    kind: str = KIND_EXACT
    values: list[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Criterion":
        """Accept both the current and the legacy (name/label) shape."""
        if not isinstance(data, dict):
            return cls(field_path="", kind="", values=[])

        field_path = str(data.get("field_path") or data.get("name") or "").strip()
        kind = data.get("kind")
        if not kind:
            kind = _LEGACY_LABELS.get(str(data.get("label") or "multiple_choice"), str(data.get("label")))

        values = data.get("values")
        if values is None:
            values = []
        elif not isinstance(values, (list, tuple)):
            values = [values]

        return cls(field_path=field_path, kind=str(kind), values=list(values))

    def to_dict(self) -> dict[str, Any]:
        return {"field_path": self.field_path, "kind": self.kind, "values": list(self.values)}


def parse_criteria(raw: Any) -> list[Criterion]:
    """Parse a stored or submitted criteria payload. Raises InvalidCriteria if it is not a list."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise InvalidCriteria("criteria must be a list")
    return [c if isinstance(c, Criterion) else Criterion.from_dict(c) for c in raw]


def parse_number(value: Any) -> Optional[float]:
    """
    Numeric value of an attribute or bound, or None.

    Accepts ints, floats and numeric strings ("1 250 000", "3,5").
    Booleans, NaN and infinities are not numbers here.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        cleaned = re.sub(r"\s+", "", value).replace(",", ".")
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def rule_field(key: str) -> str:
    """Field path of a flat criteria key, without any repeat suffix."""
    return _REPEAT_RE.sub("", key)


def _compact(number: float) -> int | float:
    return int(number) if number.is_integer() else number


def _single_range_bound(raw: Any) -> Optional[tuple[str, float]]:
    """'<= 5' → max, '> 5' → min, 'max: 5' → max, bare '5' → min."""
    text = str(raw)
    side = "min"

    op_match = _OPERATOR_RE.match(text)
    tag_match = _TAG_RE.match(text)
    if op_match:
        side = "max" if op_match.group(1).startswith("<") else "min"
        text = op_match.group(2)
    elif tag_match:
        side = tag_match.group(1).lower()
        text = tag_match.group(2)

    number = parse_number(text if isinstance(raw, str) else raw)
    if number is None:
        return None
    return side, number


def _strip_bound_markers(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    for pattern in (_OPERATOR_RE, _TAG_RE):
        matched = pattern.match(raw)
        if matched:
            return matched.group(2)
    return raw


def _flatten_range(criterion: Criterion, out: dict[str, Any], key: str) -> None:
    values = [v for v in criterion.values if str(v).strip() != ""]

    if len(values) == 1:
        bound = _single_range_bound(values[0])
        if bound is None:
            out[key] = InvalidCriterion(f"range bound {values[0]!r} is not numeric")
            return
        side, number = bound
        suffix = MIN_SUFFIX if side == "min" else MAX_SUFFIX
        out[f"{key}{suffix}"] = _compact(number)
        return

    numbers = [parse_number(_strip_bound_markers(v)) for v in values]
    if any(n is None for n in numbers):
        out[key] = InvalidCriterion(f"range values {values!r} are not all numeric")
        return
    numbers.sort()
    out[f"{key}{MIN_SUFFIX}"] = _compact(numbers[0])
    out[f"{key}{MAX_SUFFIX}"] = _compact(numbers[-1])


def flatten_criteria(criteria: Iterable[Criterion | dict]) -> dict[str, Any]:
    """
    Convert saved criteria to the flat mapping the matcher understands.

    Malformed criteria become InvalidCriterion entries instead of raising,
    so one bad criterion only makes the watch non-matching. Repeated
    criteria on one field get their own "<field>#<n>" key.
    """
    out: dict[str, Any] = {}
    occurrences: dict[str, int] = {}
    for index, item in enumerate(criteria):
        criterion = item if isinstance(item, Criterion) else Criterion.from_dict(item)
        values = [v for v in criterion.values if v is not None and str(v).strip() != ""]

        if not criterion.field_path:
            out[f"__invalid_{index}"] = InvalidCriterion("missing field_path")
            continue

        occurrence = occurrences.get(criterion.field_path, 0) + 1
        occurrences[criterion.field_path] = occurrence
        key = criterion.field_path if occurrence == 1 else f"{criterion.field_path}{REPEAT_SEP}{occurrence}"

        if not values:
            out[key] = InvalidCriterion("no values")
            continue

        if criterion.kind == KIND_RANGE:
            _flatten_range(Criterion(criterion.field_path, KIND_RANGE, values), out, key)
        elif criterion.kind == KIND_EXACT:
            out[key] = values[0] if len(values) == 1 else values
        elif criterion.kind == KIND_WORD:
            terms = tuple(term for v in values for term in str(v).split())
            out[key] = WordSearch(terms)
        else:
            logger.warning("Unknown criterion kind %r for %s", criterion.kind, criterion.field_path)
            out[key] = InvalidCriterion(f"unknown kind {criterion.kind!r}")
    return out


def format_criteria_summary(criteria: Iterable[Criterion | dict]) -> str:
    """Human-readable summary, e.g. "hinta: 40000, 100000 | sijainti: Helsinki"."""
    parts = []
    for item in criteria:
        criterion = item if isinstance(item, Criterion) else Criterion.from_dict(item)
        values = [str(v).strip() for v in criterion.values if v is not None and str(v).strip()]
        if not criterion.field_path or not values:
            continue
        label = "text" if criterion.field_path == WORD_SEARCH_FIELD else criterion.field_path
        parts.append(f"{label}: {', '.join(values)}")
    return " | ".join(parts) if parts else NO_CRITERIA_LABEL
