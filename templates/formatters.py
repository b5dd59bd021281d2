"""
Formatter Registry: named value transforms used inside template placeholders.

A formatter is a lookup table mapping a stored raw value to display text,
e.g. ``timeOfDay: {1: morning, 2: afternoon, ...}``. Tables are loaded from
YAML (config/formatters.yaml) and merged over the built-in defaults.

Flags that can follow a formatter name in a placeholder:
  join                     : render a list value as "A, B and C"
  upper|lower|proper|sentence: case transform, always applied last
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
import yaml

logger = structlog.get_logger()


def _proper(text: str) -> str:
    return " ".join(w[:1].upper() + w[1:].lower() for w in text.split(" "))


def _sentence(text: str) -> str:
    return text[:1].upper() + text[1:].lower()


CASE_TRANSFORMS: dict[str, Callable[[str], str]] = {
    "upper": str.upper,
    "lower": str.lower,
    "proper": _proper,
    "sentence": _sentence,
}

JOIN_FLAG = "join"

DEFAULT_TABLES: dict[str, dict[str, str]] = {
    "timeOfDay": {
        "1": "morning",
        "2": "afternoon",
        "3": "evening",
        "4": "night",
    },
    "activeDays": {
        "1": "Monday",
        "2": "Tuesday",
        "3": "Wednesday",
        "4": "Thursday",
        "5": "Friday",
        "6": "Saturday",
        "7": "Sunday",
        "1,2,3,4,5": "weekdays",
        "6,7": "weekends",
        "1,2,3,4,5,6,7": "every day",
    },
}


def join_with_grammar(items: list[str]) -> str:
    """[] → "", [a] → "a", [a, b] → "a and b", [a, b, c] → "a, b and c"."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} and {items[-1]}"


def parse_list(value: Any) -> Optional[list[Any]]:
    """Accept real lists, JSON array strings ("[1,2]") and comma-separated strings ("1,2")."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed.startswith("[") and trimmed.endswith("]"):
            try:
                decoded = json.loads(trimmed)
                if isinstance(decoded, list):
                    return decoded
            except ValueError:
                pass
        if "," in trimmed:
            return [part.strip() for part in trimmed.strip("[]").split(",")]
    return None


def value_key(value: Any) -> str:
    """Normalise a stored value into a formatter table key."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def apply_case(text: str, case: Optional[str]) -> str:
    if not case:
        return text
    transform = CASE_TRANSFORMS.get(case)
    return transform(text) if transform else text


class FormatterRegistry:
    """Holds formatter tables and applies them to stored values."""

    def __init__(self, tables: dict[str, dict[Any, Any]] = None):
        self._tables: dict[str, dict[str, str]] = {}
        for name, table in DEFAULT_TABLES.items():
            self.register(name, table)
        for name, table in (tables or {}).items():
            self.register(name, table)

    @classmethod
    def from_file(cls, path: str) -> FormatterRegistry:
        """Load tables from a YAML file; a missing or broken file leaves only the defaults."""
        tables: dict[str, dict[Any, Any]] = {}
        file_path = Path(path)
        if file_path.exists():
            try:
                with open(file_path) as f:
                    raw = yaml.safe_load(f) or {}
                tables = {name: t for name, t in raw.items() if isinstance(t, dict)}
            except yaml.YAMLError as e:
                logger.warning("formatters_load_failed", path=str(path), error=str(e))
        else:
            logger.debug("formatters_file_missing", path=str(path))
        registry = cls(tables)
        logger.info("formatters_loaded", count=len(registry.names()))
        return registry

    def register(self, name: str, table: dict[Any, Any]):
        merged = dict(self._tables.get(name, {}))
        merged.update({value_key(k): str(v) for k, v in table.items()})
        self._tables[name] = merged

    def names(self) -> list[str]:
        return sorted(self._tables)

    def has(self, name: str) -> bool:
        return name in self._tables or name in CASE_TRANSFORMS

    def format(self, name: str, value: Any, join: bool = False) -> Optional[str]:
        """
        Format ``value`` with the named table.
        Returns None when the formatter or the value's entry is unknown.
        """
        if name in CASE_TRANSFORMS:
            return apply_case(value_key(value), name)

        table = self._tables.get(name)
        if table is None:
            logger.debug("formatter_unknown", formatter=name)
            return None

        if join:
            # A direct mapping of the raw string ("1,2,3,4,5" → "weekdays") wins
            if not isinstance(value, (list, tuple)):
                direct = table.get(value_key(value))
                if direct is not None:
                    return direct
            items = parse_list(value)
            if items is None:
                return table.get(value_key(value))
            direct = table.get(",".join(value_key(i) for i in items))
            if direct is not None:
                return direct
            return join_with_grammar(
                [table[value_key(i)] for i in items if value_key(i) in table]
            )

        return table.get(value_key(value))
