"""
Semantic content library: hierarchical text blocks looked up by key.

Keys look like ``actor/action/subject_mod1_mod2`` (``bot/request/input_name``).
A message's ``content_key`` is resolved through a fallback chain so authors can
provide a specific variant for one context and rely on broader defaults
everywhere else:

  1. exact key                        bot/acknowledge/completion_positive_urgent
  2. drop modifiers from the right    bot/acknowledge/completion_positive
  3. subject without modifiers        bot/acknowledge/completion
  4. generic subject (+ modifiers)    bot/acknowledge/name_x → bot/acknowledge/name
  5. action default                   bot/acknowledge/default
  6. the message's literal text
"""
from __future__ import annotations

import random
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import structlog

logger = structlog.get_logger()

KEY_SEPARATOR = "/"
MODIFIER_SEPARATOR = "_"
DEFAULT_SUBJECT = "default"

GENERIC_SUBJECTS = (
    "completion", "failure", "success", "error", "input", "name",
    "welcome", "save", "delete", "update", "create", "status",
    "selection", "permission", "creation", "modification",
)


class ContentLibrary(ABC):
    """Lookup contract for hierarchical text blocks."""

    def __init__(self, rng: random.Random = None):
        self._rng = rng or random.Random()

    @abstractmethod
    def variants(self, key: str) -> list[str]:
        """All non-empty text variants stored under ``key``."""
        ...

    def lookup(self, key: str) -> Optional[str]:
        """
        One variant for ``key`` picked at random, or None.

        ``key`` is always in canonical slash form (``bot/request/input_name``);
        see ``canonical_key``.
        """
        options = self.variants(key)
        if not options:
            return None
        if len(options) == 1:
            return options[0]
        return self._rng.choice(options)


class InMemoryContentLibrary(ContentLibrary):
    """Dict-backed library, for tests and embedded content. Dotted keys are stored in slash form."""

    def __init__(self, entries: dict[str, Union[str, list[str]]] = None, rng: random.Random = None):
        super().__init__(rng)
        self._entries: dict[str, list[str]] = {}
        for key, value in (entries or {}).items():
            self.add(key, value)

    def add(self, key: str, value: Union[str, list[str]]):
        items = [value] if isinstance(value, str) else list(value)
        self._entries[canonical_key(key)] = [v.strip() for v in items if v and v.strip()]

    def variants(self, key: str) -> list[str]:
        return list(self._entries.get(key, []))


class FileContentLibrary(ContentLibrary):
    """
    Reads ``<root>/<actor>/<action>/<subject>.txt``; one variant per non-empty line.
    Files are read once and cached.
    """

    def __init__(self, root: str, rng: random.Random = None):
        super().__init__(rng)
        self.root = Path(root)
        self._cache: dict[str, list[str]] = {}

    def variants(self, key: str) -> list[str]:
        if key in self._cache:
            return list(self._cache[key])

        parts = [p for p in key.split(KEY_SEPARATOR) if p]
        if not parts or any(p in (".", "..") for p in parts):
            return []
        path = self.root.joinpath(*parts).with_suffix(".txt")
        lines: list[str] = []
        if path.is_file():
            try:
                lines = [ln.strip() for ln in path.read_text(encoding="utf-8").splitlines() if ln.strip()]
            except OSError as e:
                logger.warning("content_read_failed", key=key, path=str(path), error=str(e))
        self._cache[key] = lines
        return list(lines)

    def clear_cache(self):
        self._cache.clear()


# ──────────────────────────────────────────────────────────────
#  Key handling
# ──────────────────────────────────────────────────────────────

def parse_content_key(key: str) -> Optional[tuple[str, str, str, list[str]]]:
    """
    Split a key into (actor, action, subject, modifiers); None when malformed.
    Dotted keys (``bot.request.input.name``) are accepted and map to the same
    canonical slash form.
    """
    key = (key or "").strip()
    if KEY_SEPARATOR not in key and "." in key:
        dotted = key.split(".")
        if len(dotted) < 3 or not all(dotted[:3]):
            return None
        return dotted[0], dotted[1], dotted[2], [m for m in dotted[3:] if m]
    parts = key.split(KEY_SEPARATOR)
    if len(parts) < 3 or not all(parts[:3]):
        return None
    actor, action = parts[0], parts[1]
    segments = KEY_SEPARATOR.join(parts[2:]).split(MODIFIER_SEPARATOR)
    subject, modifiers = segments[0], [m for m in segments[1:] if m]
    return actor, action, subject, modifiers


def canonical_key(key: str) -> str:
    """Slash form of a content key; dotted keys are rewritten, malformed keys kept as given."""
    parsed = parse_content_key(key)
    return _join(*parsed) if parsed else key


def _join(actor: str, action: str, subject: str, modifiers: list[str]) -> str:
    tail = MODIFIER_SEPARATOR.join([subject, *modifiers]) if modifiers else subject
    return f"{actor}{KEY_SEPARATOR}{action}{KEY_SEPARATOR}{tail}"


def generic_subject(subject: str) -> Optional[str]:
    """The generic bucket a specific subject belongs to, e.g. ``task_completion`` → ``completion``."""
    for suffix in GENERIC_SUBJECTS:
        if subject != suffix and subject.endswith(suffix):
            return suffix
    return None


def build_fallback_chain(content_key: str) -> list[str]:
    """Ordered, de-duplicated list of keys to try for ``content_key``."""
    parsed = parse_content_key(content_key)
    if parsed is None:
        return []
    actor, action, subject, modifiers = parsed

    chain = [_join(actor, action, subject, modifiers)]
    for i in range(len(modifiers) - 1, 0, -1):
        chain.append(_join(actor, action, subject, modifiers[:i]))
    chain.append(_join(actor, action, subject, []))

    generic = generic_subject(subject)
    if generic:
        chain.append(_join(actor, action, generic, modifiers))
        for i in range(len(modifiers) - 1, 0, -1):
            chain.append(_join(actor, action, generic, modifiers[:i]))
        chain.append(_join(actor, action, generic, []))

    chain.append(_join(actor, action, DEFAULT_SUBJECT, []))

    seen: set[str] = set()
    return [k for k in chain if not (k in seen or seen.add(k))]


def resolve_content(content_key: Optional[str], fallback_text: str, library: Optional[ContentLibrary]) -> str:
    """
    Resolve ``content_key`` against ``library``, degrading to ``fallback_text``.
    Never raises.
    """
    if not content_key or library is None:
        return fallback_text
    for key in build_fallback_chain(content_key):
        try:
            text = library.lookup(key)
        except Exception as e:
            logger.warning("content_lookup_failed", key=key, error=str(e))
            continue
        if text:
            if key != content_key:
                logger.debug("content_fallback_used", requested=content_key, resolved=key)
            return text
    logger.debug("content_key_unresolved", content_key=content_key)
    return fallback_text
