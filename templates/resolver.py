"""
Template Resolver: substitutes data-store values into authored text.

Placeholder grammar:
  {key}                       stored value
  {key|fallback}              fallback text when the key is absent
  {key:formatter}             value run through a formatter table
  {key:formatter|fallback}
  {key:formatter:join}        list value rendered as "A, B and C"
  {key:formatter:case}        case transform (upper/lower/proper/sentence)
  {key:formatter:join:case}

Resolution order per placeholder: lookup → formatter → join → case.
An unresolvable placeholder without fallback is left in the text verbatim.
Nothing here raises.
"""
from __future__ import annotations

import re
from typing import Any, Optional

import structlog

from models.schemas import MULTIPART_SEPARATOR
from templates.formatters import (
    CASE_TRANSFORMS, JOIN_FLAG, FormatterRegistry,
    apply_case, join_with_grammar, value_key,
)
from utils.conditions import lookup_value

logger = structlog.get_logger()

PLACEHOLDER_RE = re.compile(r"\{([^{}:|]+)((?::[^{}:|]+)*)(?:\|([^{}]*))?\}")


class Placeholder:
    """Parsed form of one ``{...}`` occurrence."""

    def __init__(self, raw: str, key: str, modifiers: list[str], fallback: Optional[str]):
        self.raw = raw
        self.key = key
        self.fallback = fallback
        self.formatter: Optional[str] = None
        self.join = False
        self.case: Optional[str] = None
        for mod in modifiers:
            if mod == JOIN_FLAG:
                self.join = True
            elif mod in CASE_TRANSFORMS:
                self.case = mod
            elif self.formatter is None:
                self.formatter = mod

    def __repr__(self):
        return f"<Placeholder {self.raw}>"


def parse_placeholder(match: re.Match) -> Placeholder:
    modifiers = [m.strip() for m in match.group(2).split(":") if m.strip()]
    return Placeholder(
        raw=match.group(0),
        key=match.group(1).strip(),
        modifiers=modifiers,
        fallback=match.group(3),
    )


def find_placeholders(text: str) -> list[Placeholder]:
    return [parse_placeholder(m) for m in PLACEHOLDER_RE.finditer(text or "")]


def has_balanced_braces(text: str) -> bool:
    """True when every "{" is closed by a "}" before the next "{" opens."""
    depth = 0
    for char in text or "":
        if char == "{":
            depth += 1
            if depth > 1:
                return False
        elif char == "}":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def stringify(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return join_with_grammar([stringify(v) for v in value])
    return value_key(value)


def _resolve_one(
    placeholder: Placeholder,
    data: dict[str, Any],
    formatters: FormatterRegistry,
) -> str:
    value = lookup_value(data, placeholder.key)

    if value is None:
        if placeholder.fallback is None:
            logger.debug("template_key_missing", key=placeholder.key)
            return placeholder.raw
        return apply_case(placeholder.fallback, placeholder.case)

    text: Optional[str] = None
    if placeholder.formatter:
        text = formatters.format(placeholder.formatter, value, join=placeholder.join)
        if text is None and placeholder.fallback is not None:
            text = placeholder.fallback
    elif placeholder.join and isinstance(value, (list, tuple)):
        text = join_with_grammar([stringify(v) for v in value])

    if text is None:
        text = stringify(value)
    return apply_case(text, placeholder.case)


def resolve_template(
    text: str,
    data: dict[str, Any],
    formatters: FormatterRegistry = None,
) -> str:
    """Replace every placeholder in ``text`` using the ``data`` snapshot."""
    if not text or "{" not in text:
        return text or ""
    formatters = formatters or FormatterRegistry()
    return PLACEHOLDER_RE.sub(
        lambda m: _resolve_one(parse_placeholder(m), data, formatters), text,
    )


def split_multipart(text: str) -> list[str]:
    """Split on the multi-part separator, trimming and dropping empty segments."""
    return [part.strip() for part in (text or "").split(MULTIPART_SEPARATOR) if part.strip()]
