"""
Rule Evaluation
Typed comparisons of one resolved value against a configured expectation.

Dispatch is by the runtime shape of the resolved value:
  - list             -> length / minLength / maxLength / contains / notContains
  - decimal string   -> eq / gt / gte / lt / lte / range  (unknown -> eq)
  - plain string     -> exact / contains / prefix / suffix / regex  (unknown -> exact)
  - anything else    -> False

Evaluation is fail-closed: every parse or lookup failure yields False.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from approval.values import NOT_FOUND, parse_int, resolve_path


class RuleKind(str, Enum):
    # lists
    LENGTH = "length"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    # decimals
    EQ = "eq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    RANGE = "range"
    # strings
    EXACT = "exact"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    REGEX = "regex"


@dataclass(frozen=True)
class Rule:
    path: str
    expected: str
    kind: str = RuleKind.EXACT.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Rule":
        """Build from a config entry ``{"path", "value", "rule"}``."""
        return cls(
            path=str(data["path"]),
            expected=str(data.get("value", "")),
            kind=str(data.get("rule", "")),
        )

    def describe(self) -> str:
        return f"{self.path} {self.kind or 'default'} {self.expected!r}"


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------

def parse_decimal(text: str) -> Optional[Decimal]:
    """Parse a finite decimal literal. Whitespace, underscores, NaN and
    infinities are rejected."""
    if not text or text != text.strip() or "_" in text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return value


# ---------------------------------------------------------------------------
# Per-shape evaluators
# ---------------------------------------------------------------------------

def _check_list(actual: list, expected: str, kind: str) -> bool:
    if kind in (RuleKind.LENGTH, RuleKind.MIN_LENGTH, RuleKind.MAX_LENGTH):
        size = parse_int(expected)
        if size is None:
            return False
        if kind == RuleKind.LENGTH:
            return len(actual) == size
        if kind == RuleKind.MIN_LENGTH:
            return len(actual) >= size
        return len(actual) <= size

    if kind == RuleKind.CONTAINS:
        return any(isinstance(item, str) and item == expected for item in actual)
    if kind == RuleKind.NOT_CONTAINS:
        return not any(isinstance(item, str) and item == expected for item in actual)

    return False


def _check_decimal(actual: Decimal, expected: str, kind: str) -> bool:
    if kind == RuleKind.RANGE:
        parts = expected.split(",")
        if len(parts) != 2:
            return False
        low = parse_decimal(parts[0])
        high = parse_decimal(parts[1])
        if low is None or high is None:
            return False
        return low <= actual <= high

    target = parse_decimal(expected)
    if target is None:
        return False

    if kind == RuleKind.GT:
        return actual > target
    if kind == RuleKind.GTE:
        return actual >= target
    if kind == RuleKind.LT:
        return actual < target
    if kind == RuleKind.LTE:
        return actual <= target
    return actual == target


def _check_string(actual: str, expected: str, kind: str) -> bool:
    if kind == RuleKind.CONTAINS:
        return expected in actual
    if kind == RuleKind.PREFIX:
        return actual.startswith(expected)
    if kind == RuleKind.SUFFIX:
        return actual.endswith(expected)
    if kind == RuleKind.REGEX:
        try:
            return re.search(expected, actual) is not None
        except re.error:
            return False
    return actual == expected


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def evaluate_rule(value: Any, rule: Rule) -> bool:
    """Evaluate ``rule`` against an already-resolved value."""
    if value is NOT_FOUND:
        return False
    if isinstance(value, list):
        return _check_list(value, rule.expected, rule.kind)
    if isinstance(value, str):
        number = parse_decimal(value)
        if number is None:
            return _check_string(value, rule.expected, rule.kind)
        return _check_decimal(number, rule.expected, rule.kind)
    return False


def check_rule(tree: Any, rule: Rule) -> bool:
    """Resolve ``rule.path`` in ``tree`` and evaluate the rule there."""
    return evaluate_rule(resolve_path(tree, rule.path), rule)
