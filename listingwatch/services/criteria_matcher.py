"""Criteria matching: evaluate flattened criteria against one listing's attributes.

Rules are derived from the flat criteria mapping:
  - "<field>_min" / "<field>_max"  → inclusive numeric range on <field>
  - scalar or list value           → exact_or_set (slug comparison, OR over values)
  - WordSearch value               → word search on <field> (or title + all text for __word_search)
  - InvalidCriterion value         → never matches
  - "<field>#<n>" key              → a separate rule on <field>
"""
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Sequence

from listingwatch.core.config import settings
from listingwatch.services.criteria import (
    KIND_EXACT,
    KIND_RANGE,
    KIND_WORD,
    MAX_SUFFIX,
    MIN_SUFFIX,
    WORD_SEARCH_FIELD,
    InvalidCriterion,
    WordSearch,
    parse_number,
    rule_field,
)
from listingwatch.utils.slug import normalize, to_text

logger = logging.getLogger(__name__)

LOGIC_AND = "AND"
LOGIC_OR = "OR"

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class _Absent:
    """Marker for a field path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()


class AttachmentDetector:
    """
    Recognizes attachment descriptors (image/file dicts such as
    {"id": 5, "url": "...", "alt": "", "width": 800, "height": 600}).
    A mapping carrying at least `threshold` of the marker keys
    (case-insensitive) is an attachment.
    """

    def __init__(self, marker_keys: Optional[Iterable[str]] = None, threshold: Optional[int] = None):
        keys = marker_keys if marker_keys is not None else settings.attachment_marker_keys_list
        self.marker_keys = frozenset(k.lower() for k in keys)
        self.threshold = threshold if threshold is not None else settings.attachment_marker_threshold

    def __call__(self, value: Any) -> bool:
        if not isinstance(value, Mapping) or not self.marker_keys:
            return False
        present = sum(1 for k in value if isinstance(k, str) and k.lower() in self.marker_keys)
        return present >= self.threshold


def resolve_field(attributes: Any, path: str, is_attachment: Optional[AttachmentDetector] = None) -> Any:
    """
    Value at a dotted path, or ABSENT. Only descends through mappings and
    never into attachment descriptors. Never raises.
    """
    if not isinstance(attributes, Mapping) or not path:
        return ABSENT
    if path in attributes:
        return attributes[path]

    current: Any = attributes
    for segment in path.split("."):
        if not isinstance(current, Mapping) or (is_attachment is not None and is_attachment(current)):
            return ABSENT
        if segment not in current:
            return ABSENT
        current = current[segment]
    return current


def iter_text_leaves(value: Any, is_attachment: Optional[AttachmentDetector] = None) -> Iterator[str]:
    """Every scalar leaf as text, skipping attachment descriptors."""
    if value is None or value is ABSENT:
        return
    if isinstance(value, Mapping):
        if is_attachment is not None and is_attachment(value):
            return
        for child in value.values():
            yield from iter_text_leaves(child, is_attachment)
    elif isinstance(value, (list, tuple, set)):
        for child in value:
            yield from iter_text_leaves(child, is_attachment)
    else:
        yield to_text(value)


def collect_field_names(
    attributes: Any,
    is_attachment: Optional[AttachmentDetector] = None,
    prefix: str = "",
) -> list[str]:
    """Dotted leaf field names. Attachments are listed but not descended into."""
    names: list[str] = []
    if not isinstance(attributes, Mapping):
        return names
    for key, value in attributes.items():
        name = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping) and value and not (is_attachment is not None and is_attachment(value)):
            names.extend(collect_field_names(value, is_attachment, name))
        else:
            names.append(name)
    return names


def tokenize(text: str) -> list[str]:
    """Casefolded word tokens in order; punctuation and hyphens separate words."""
    return _TOKEN_RE.findall(text.casefold())


def term_matches(term: str, tokens: Sequence[str]) -> bool:
    """
    True if the term's words occur consecutively in tokens. A trailing *
    makes the last word a prefix.
    """
    is_prefix = term.endswith("*")
    words = tokenize(term.rstrip("*"))
    if not words:
        return False
    head, last = words[:-1], words[-1]
    for start in range(len(tokens) - len(words) + 1):
        if list(tokens[start:start + len(head)]) != head:
            continue
        candidate = tokens[start + len(head)]
        if candidate == last or (is_prefix and candidate.startswith(last)):
            return True
    return False


@dataclass
class CriterionOutcome:
    key: str
    kind: str
    matched: bool
    actual: Any = None

    def to_dict(self) -> dict[str, Any]:
        actual = None if self.actual is ABSENT else self.actual
        return {"key": self.key, "kind": self.kind, "matched": self.matched, "actual": actual}


@dataclass
class MatchResult:
    matched: bool
    per_criterion: list[CriterionOutcome] = field(default_factory=list)

    def matched_keys(self) -> list[str]:
        return [o.key for o in self.per_criterion if o.matched]


@dataclass
class _Rule:
    key: str
    kind: str
    expected: Any = None
    low: Any = None
    high: Any = None


class CriteriaMatcher:
    """Evaluate flattened criteria against a listing's attributes."""

    def __init__(self, is_attachment: Optional[AttachmentDetector] = None):
        self.is_attachment = is_attachment or AttachmentDetector()

    # ── Rule building ────────────────────────────────────────────────

    def _build_rules(self, criteria: Mapping[str, Any]) -> list[_Rule]:
        rules: list[_Rule] = []
        ranges: dict[str, _Rule] = {}

        for key, expected in criteria.items():
            if isinstance(expected, InvalidCriterion):
                rules.append(_Rule(key=key, kind="invalid", expected=expected))
                continue
            if isinstance(expected, WordSearch) or rule_field(key) == WORD_SEARCH_FIELD:
                if not isinstance(expected, WordSearch):
                    values = expected if isinstance(expected, (list, tuple)) else [expected]
                    expected = WordSearch(tuple(t for v in values for t in str(v).split()))
                rules.append(_Rule(key=key, kind=KIND_WORD, expected=expected))
                continue

            is_bound_value = not isinstance(expected, (list, tuple, Mapping))
            if is_bound_value and key.endswith(MIN_SUFFIX) and len(key) > len(MIN_SUFFIX):
                base = key[: -len(MIN_SUFFIX)]
                rule = ranges.get(base)
                if rule is None:
                    rule = ranges[base] = _Rule(key=base, kind=KIND_RANGE)
                    rules.append(rule)
                rule.low = expected
                continue
            if is_bound_value and key.endswith(MAX_SUFFIX) and len(key) > len(MAX_SUFFIX):
                base = key[: -len(MAX_SUFFIX)]
                rule = ranges.get(base)
                if rule is None:
                    rule = ranges[base] = _Rule(key=base, kind=KIND_RANGE)
                    rules.append(rule)
                rule.high = expected
                continue

            rules.append(_Rule(key=key, kind=KIND_EXACT, expected=expected))
        return rules

    # ── Rule evaluation ──────────────────────────────────────────────

    def _match_range(self, actual: Any, low: Any, high: Any) -> bool:
        number = parse_number(actual)
        if number is None:
            return False
        if low is not None:
            low_number = parse_number(low)
            if low_number is None or number < low_number:
                return False
        if high is not None:
            high_number = parse_number(high)
            if high_number is None or number > high_number:
                return False
        return True

    def _match_set(self, actual: Any, expected: Any) -> bool:
        if actual is ABSENT or actual is None or isinstance(actual, Mapping):
            return False
        expected_values = expected if isinstance(expected, (list, tuple)) else [expected]
        wanted = {normalize(v) for v in expected_values} - {""}
        if not wanted:
            return False
        if isinstance(actual, (list, tuple, set)):
            have = {normalize(v) for v in actual if not isinstance(v, (Mapping, list, tuple))}
            return bool(have & wanted)
        return normalize(actual) in wanted

    def _match_words(self, text: str, search: WordSearch) -> bool:
        tokens = tokenize(text)
        if not tokens:
            return False
        return any(term_matches(term, tokens) for term in search.terms)

    def _word_text(self, key: str, attributes: Any, title: Optional[str]) -> tuple[str, Any]:
        path = rule_field(key)
        if path == WORD_SEARCH_FIELD:
            parts = [title or ""]
            parts.extend(iter_text_leaves(attributes, self.is_attachment))
            return " ".join(parts), title
        actual = resolve_field(attributes, path, self.is_attachment)
        return " ".join(iter_text_leaves(actual, self.is_attachment)), actual

    def _evaluate_rule(self, rule: _Rule, attributes: Any, title: Optional[str]) -> CriterionOutcome:
        if rule.kind == "invalid":
            return CriterionOutcome(rule.key, rule.kind, False, None)
        if rule.kind == KIND_WORD:
            text, actual = self._word_text(rule.key, attributes, title)
            return CriterionOutcome(rule.key, rule.kind, self._match_words(text, rule.expected), actual)

        actual = resolve_field(attributes, rule_field(rule.key), self.is_attachment)
        if rule.kind == KIND_RANGE:
            return CriterionOutcome(rule.key, rule.kind, self._match_range(actual, rule.low, rule.high), actual)
        return CriterionOutcome(rule.key, rule.kind, self._match_set(actual, rule.expected), actual)

    def evaluate(
        self,
        attributes: Any,
        criteria: Mapping[str, Any],
        logic: str = LOGIC_AND,
        title: Optional[str] = None,
    ) -> MatchResult:
        """
        Evaluate every rule and combine them. Zero rules never match.
        Unknown logic values fall back to AND.
        """
        rules = self._build_rules(criteria or {})
        if not rules:
            return MatchResult(matched=False)

        outcomes = [self._evaluate_rule(rule, attributes, title) for rule in rules]

        mode = (logic or LOGIC_AND).upper()
        if mode not in (LOGIC_AND, LOGIC_OR):
            logger.warning("Unknown match logic %r, using AND", logic)
            mode = LOGIC_AND

        if mode == LOGIC_OR:
            matched = any(o.matched for o in outcomes)
        else:
            matched = all(o.matched for o in outcomes)
        return MatchResult(matched=matched, per_criterion=outcomes)

    def matches(self, attributes: Any, criteria: Mapping[str, Any], logic: str = LOGIC_AND, title: Optional[str] = None) -> bool:
        return self.evaluate(attributes, criteria, logic, title).matched
