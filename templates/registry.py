"""
Sequence Registry: Loads, validates, and indexes authored sequences.

Sequences arrive as raw dicts (JSON authoring format, camelCase keys) and are
parsed into immutable models, validated, and indexed by id.

Two entry points:
  - load(raw)          config path; never raises, returns a LoadResult
  - register(sequence) programmatic path; raises SequenceValidationError
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from models.schemas import (
    Choice, DataAction, DataActionType, LoadResult, Message, MessageType,
    RouteCondition, Sequence, SequenceValidationError, Severity,
    ValidationIssue, ValidationResult, DEFAULT_PLACEHOLDER_TEXT,
)
from templates.validation import validate_sequence

logger = structlog.get_logger()


class SequenceRegistry:
    """Central registry of validated sequences, indexed by sequence id."""

    def __init__(self):
        self._sequences: dict[str, Sequence] = {}

    # ── Registration ──────────────────────────────────

    def register(self, sequence: Sequence) -> ValidationResult:
        """Validate and register a sequence; replaces any sequence with the same id."""
        result = validate_sequence(sequence)
        if not result.is_valid:
            logger.error("invalid_sequence",
                         sequence_id=sequence.id,
                         errors=[str(e) for e in result.errors])
            raise SequenceValidationError(sequence.id, result.errors)
        self._store(sequence, result)
        return result

    def _store(self, sequence: Sequence, result: ValidationResult):
        for warning in result.warnings:
            logger.warning("sequence_validation_warning",
                           sequence_id=sequence.id,
                           code=warning.code,
                           message_id=warning.message_id,
                           detail=warning.message)

        self._sequences[sequence.id] = sequence
        logger.info("sequence_registered",
                    sequence_id=sequence.id,
                    name=sequence.name,
                    messages=len(sequence.messages),
                    warnings=len(result.warnings))

    def load(self, raw: dict[str, Any]) -> LoadResult:
        """Parse, validate and (when valid) register a raw sequence config."""
        sequence, parse_issues = parse_sequence(raw)
        result = LoadResult(sequence=sequence)
        result.validation.extend(parse_issues)
        if sequence is None:
            logger.error("sequence_parse_failed",
                         sequence_id=raw.get("sequenceId") if isinstance(raw, dict) else None,
                         errors=[str(e) for e in parse_issues])
            return result

        validation = validate_sequence(sequence)
        result.validation.extend(validation.errors + validation.warnings)
        if validation.is_valid:
            self._store(sequence, validation)
        else:
            logger.error("invalid_sequence",
                         sequence_id=sequence.id,
                         errors=[str(e) for e in validation.errors])
        return result

    def load_file(self, path: str) -> LoadResult:
        file_path = Path(path)
        try:
            with open(file_path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("sequence_file_unreadable", path=str(path), error=str(e))
            result = LoadResult()
            result.validation.extend([ValidationIssue(
                severity=Severity.ERROR, code="UNREADABLE_FILE", message=f"{file_path.name}: {e}",
            )])
            return result
        return self.load(raw)

    def load_directory(self, directory: str) -> dict[str, LoadResult]:
        """Load every ``*.json`` file in ``directory``; keyed by file name."""
        results: dict[str, LoadResult] = {}
        root = Path(directory)
        if not root.is_dir():
            logger.warning("sequence_directory_missing", directory=str(directory))
            return results
        for path in sorted(root.glob("*.json")):
            results[path.name] = self.load_file(str(path))
        loaded = sum(1 for r in results.values() if r.ok)
        logger.info("sequences_loaded", directory=str(directory), loaded=loaded, total=len(results))
        for issue in self.check_cross_references():
            logger.warning("sequence_validation_warning",
                           sequence_id=issue.sequence_id,
                           code=issue.code,
                           message_id=issue.message_id,
                           detail=issue.message)
        return results

    # ── Lookup ────────────────────────────────────────

    def get(self, sequence_id: str) -> Optional[Sequence]:
        return self._sequences.get(sequence_id)

    def has(self, sequence_id: str) -> bool:
        return sequence_id in self._sequences

    def list_all(self) -> list[Sequence]:
        return list(self._sequences.values())

    def ids(self) -> list[str]:
        return sorted(self._sequences)

    # ── Cross-sequence checks ─────────────────────────

    def check_cross_references(self) -> list[ValidationIssue]:
        """Warn about jumps to sequences that are not registered."""
        issues = []
        for seq in self._sequences.values():
            for msg in seq.messages:
                targets = [msg.sequence_id] + [c.sequence_id for c in msg.choices] + [r.sequence_id for r in msg.routes]
                for target in targets:
                    if target and target not in self._sequences:
                        issues.append(ValidationIssue(
                            severity=Severity.WARNING,
                            code="UNKNOWN_SEQUENCE",
                            message=f"Jump to unknown sequence '{target}'",
                            message_id=msg.id,
                            sequence_id=seq.id,
                        ))
        return issues


# ──────────────────────────────────────────────────────────────
#  Parsing
# ──────────────────────────────────────────────────────────────

def parse_sequence(raw: Any) -> tuple[Optional[Sequence], list[ValidationIssue]]:
    """Parse raw config into a Sequence; problems come back as error issues."""
    if not isinstance(raw, dict):
        return None, [_parse_error("Sequence config must be an object")]

    sequence_id = str(raw.get("sequenceId") or raw.get("id") or "")
    issues: list[ValidationIssue] = []
    messages: list[Message] = []
    raw_messages = raw.get("messages") or []
    if not isinstance(raw_messages, list):
        return None, [_parse_error("'messages' must be a list", sequence_id=sequence_id)]

    for index, raw_msg in enumerate(raw_messages):
        if not isinstance(raw_msg, dict):
            issues.append(_parse_error(f"Message at index {index} must be an object", sequence_id=sequence_id))
            continue
        try:
            messages.append(_parse_message(raw_msg))
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            message_id = raw_msg.get("id")
            issues.append(_parse_error(
                f"Message at index {index} is malformed: {e}",
                sequence_id=sequence_id,
                message_id=message_id if isinstance(message_id, int) else None,
            ))

    if issues:
        return None, issues

    sequence = Sequence(
        id=sequence_id,
        name=str(raw.get("name") or ""),
        description=str(raw.get("description") or ""),
        messages=messages,
    )
    return sequence, []


def _parse_error(text: str, sequence_id: str = "", message_id: Optional[int] = None) -> ValidationIssue:
    return ValidationIssue(
        severity=Severity.ERROR, code="PARSE_ERROR", message=text,
        message_id=message_id, sequence_id=sequence_id or None,
    )


def _parse_id(value: Any, field: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"{field} must be an integer, got {value!r}")
    return int(value)


def _parse_type(raw: dict[str, Any]) -> MessageType:
    if "type" in raw:
        return MessageType(raw["type"])
    # Older content marks interactive messages with flags instead of a type
    if raw.get("isChoice"):
        return MessageType.CHOICE
    if raw.get("isTextInput"):
        return MessageType.TEXT_INPUT
    if raw.get("sender") == "user":
        return MessageType.USER
    return MessageType.BOT


def _object_list(value: Any, field: str) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise TypeError(f"{field} must be a list of objects")
    return value


def _parse_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _parse_message(raw: dict[str, Any]) -> Message:
    """Parse a raw dict into a Message."""
    raw_actions = _object_list(raw.get("dataActions") or raw.get("actions"), "dataActions")
    if raw.get("action"):
        raw_actions = _object_list([raw["action"]], "action") + raw_actions

    return Message(
        id=_parse_id(raw["id"], "id"),
        type=_parse_type(raw),
        text=str(raw.get("text") or ""),
        delay=int(raw.get("delay") or 0),
        has_explicit_delay=raw.get("delay") is not None,
        next_message_id=_parse_id(raw.get("nextMessageId"), "nextMessageId"),
        sequence_id=raw.get("sequenceId"),
        store_key=raw.get("storeKey"),
        placeholder_text=raw.get("placeholderText") or DEFAULT_PLACEHOLDER_TEXT,
        choices=[_parse_choice(c) for c in _object_list(raw.get("choices"), "choices")],
        routes=[_parse_route(r) for r in _object_list(raw.get("routes"), "routes")],
        data_actions=[_parse_action(a) for a in raw_actions],
        image_path=raw.get("imagePath"),
        content_key=raw.get("contentKey"),
        selected_choice_text=raw.get("selectedChoiceText"),
    )


def _parse_choice(raw: dict[str, Any]) -> Choice:
    return Choice(
        text=str(raw["text"]),
        value=raw.get("value"),
        next_message_id=_parse_id(raw.get("nextMessageId"), "nextMessageId"),
        sequence_id=raw.get("sequenceId"),
        content_key=raw.get("contentKey"),
    )


def _parse_route(raw: dict[str, Any]) -> RouteCondition:
    return RouteCondition(
        condition=raw.get("condition"),
        next_message_id=_parse_id(raw.get("nextMessageId"), "nextMessageId"),
        sequence_id=raw.get("sequenceId"),
        is_default=_parse_flag(raw.get("default", raw.get("isDefault", False))),
    )


def _parse_action(raw: dict[str, Any]) -> DataAction:
    return DataAction(
        type=DataActionType(raw["type"]),
        key=raw.get("key"),
        value=raw.get("value"),
        event=raw.get("event"),
        data=raw.get("data") or {},
    )
