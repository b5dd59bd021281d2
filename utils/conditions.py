"""
Shared condition evaluator: used by the route processor and the validator.

Evaluates authored boolean expressions such as
``user.age >= 18 && user.isOnboarded || session.visitCount == 1``
against a flat data-store snapshot.

Grammar (no grouping parentheses):
  expression := and_group ( "||" and_group )*
  and_group  := atom ( "&&" atom )*
  atom       := operand OP operand | operand
  OP         := == | != | >= | <= | > | <

An expression is true when any OR-group is true; an OR-group is true when all
of its terms are. A bare operand is a truthiness check.
"""
from __future__ import annotations

import operator as op
from typing import Any, Optional

import structlog

logger = structlog.get_logger()

# Longer tokens first so ">=" is never read as ">"
COMPARISON_OPERATORS: dict[str, Any] = {
    ">=": op.ge,
    "<=": op.le,
    "!=": op.ne,
    "==": op.eq,
    ">": op.gt,
    "<": op.lt,
}

_MISSING = object()
_QUOTES = ("'", '"')


def get_nested_value(data: dict, field: str) -> Any:
    """Get a value from nested dict using dot notation. e.g. 'order.status'"""
    current = data
    for part in field.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def lookup_value(data: dict[str, Any], key: str) -> Any:
    """
    Resolve a dotted key against a snapshot.
    Flat keys ("user.name" stored as-is) win over nested dict traversal.
    """
    if key in data:
        return data[key]
    return get_nested_value(data, key)


def is_truthy(value: Any) -> bool:
    """None, False, 0, blank or "false" strings and empty collections are falsy."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip()) and value.strip().lower() != "false"
    return bool(value)


def to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            try:
                return float(value.strip())
            except ValueError:
                return None
    return None


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return strip_quotes(str(value))


def strip_quotes(token: str) -> str:
    token = token.strip()
    if len(token) >= 2 and token[0] in _QUOTES and token[-1] == token[0]:
        return token[1:-1]
    return token


# ──────────────────────────────────────────────────────────────
#  Tokenising
# ──────────────────────────────────────────────────────────────

def find_outside_quotes(text: str, token: str) -> int:
    """Index of the first ``token`` not inside single or double quotes, else -1."""
    in_single = in_double = False
    for i, char in enumerate(text):
        if char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        elif not in_single and not in_double and text.startswith(token, i):
            return i
    return -1


def split_outside_quotes(text: str, token: str) -> list[str]:
    parts = []
    rest = text
    while True:
        idx = find_outside_quotes(rest, token)
        if idx == -1:
            parts.append(rest)
            return parts
        parts.append(rest[:idx])
        rest = rest[idx + len(token):]


def parse_comparison(term: str) -> Optional[tuple[str, str, str]]:
    """Split an atom into (left, operator, right), or None for a bare operand."""
    for symbol in COMPARISON_OPERATORS:
        idx = find_outside_quotes(term, symbol)
        if idx != -1:
            return term[:idx].strip(), symbol, term[idx + len(symbol):].strip()
    return None


def _parse_literal(token: str) -> Any:
    """Literal form of an operand: null/true/false, quoted string or number."""
    token = token.strip()
    if token == "null":
        return None
    if token == "true":
        return True
    if token == "false":
        return False
    if len(token) >= 2 and token[0] in _QUOTES and token[-1] == token[0]:
        return token[1:-1]
    number = to_number(token)
    if number is not None:
        return number
    return _MISSING


def _resolve_left(token: str, data: dict[str, Any]) -> Any:
    literal = _parse_literal(token)
    if literal is not _MISSING:
        return literal
    return lookup_value(data, token.strip())


def _resolve_right(token: str) -> Any:
    literal = _parse_literal(token)
    if literal is not _MISSING:
        return literal
    return token.strip()


# ──────────────────────────────────────────────────────────────
#  Evaluation
# ──────────────────────────────────────────────────────────────

def compare(left: Any, symbol: str, right: Any) -> bool:
    """Numeric comparison when both sides are numbers, string comparison otherwise."""
    if symbol in ("==", "!="):
        if right is None or left is None:
            equal = left is None and right is None
        else:
            l_num, r_num = to_number(left), to_number(right)
            if l_num is not None and r_num is not None:
                equal = l_num == r_num
            else:
                equal = _as_text(left) == _as_text(right)
        return equal if symbol == "==" else not equal

    if left is None or right is None:
        return False
    fn = COMPARISON_OPERATORS[symbol]
    l_num, r_num = to_number(left), to_number(right)
    if l_num is not None and r_num is not None:
        return fn(l_num, r_num)
    return fn(_as_text(left), _as_text(right))


def evaluate_term(term: str, data: dict[str, Any]) -> bool:
    """Evaluate one atomic comparison or truthiness check."""
    term = term.strip()
    if not term:
        return False
    parsed = parse_comparison(term)
    if parsed is None:
        return is_truthy(_resolve_left(term, data))
    left, symbol, right = parsed
    if not left:
        return False
    return compare(_resolve_left(left, data), symbol, _resolve_right(right))


def evaluate(expression: Optional[str], data: dict[str, Any]) -> bool:
    """
    Evaluate a condition string against a snapshot.
    Never raises; malformed input evaluates to False.
    """
    if not expression or not expression.strip():
        return False
    try:
        for or_group in split_outside_quotes(expression, "||"):
            terms = split_outside_quotes(or_group, "&&")
            if all(evaluate_term(t, data) for t in terms):
                return True
        return False
    except (TypeError, ValueError) as e:
        logger.warning("condition_evaluation_failed", condition=expression, error=str(e))
        return False


def looks_well_formed(expression: str) -> bool:
    """Best-effort static check used by the validator: balanced quotes, no empty terms."""
    if expression.count("'") % 2 or expression.count('"') % 2:
        return False
    for or_group in split_outside_quotes(expression, "||"):
        for term in split_outside_quotes(or_group, "&&"):
            term = term.strip()
            if not term:
                return False
            parsed = parse_comparison(term)
            if parsed is None:
                # A lone "=" is almost always a typo for "=="
                if "=" in term or " " in term:
                    return False
            elif not parsed[0] or not parsed[2]:
                return False
    return True
