"""
Core data models for the scripted conversation runtime.

Authored content (Sequence, Message, Choice, RouteCondition, DataAction) is
parsed once from configuration and treated as immutable afterwards. Runtime
changes such as marking a selected choice produce a new copy via
``model_copy(update=...)`` rather than mutating a shared record.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class MessageType(str, Enum):
    BOT = "bot"
    USER = "user"
    CHOICE = "choice"
    TEXT_INPUT = "textInput"
    AUTOROUTE = "autoroute"
    DATA_ACTION = "dataAction"
    IMAGE = "image"
    SYSTEM = "system"


class DataActionType(str, Enum):
    SET = "set"
    INCREMENT = "increment"
    DECREMENT = "decrement"
    RESET = "reset"
    TRIGGER = "trigger"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


INTERACTIVE_TYPES = frozenset({MessageType.CHOICE, MessageType.TEXT_INPUT})
MULTIPART_TYPES = frozenset({MessageType.BOT, MessageType.USER})
SILENT_TYPES = frozenset({MessageType.AUTOROUTE, MessageType.DATA_ACTION})

MULTIPART_SEPARATOR = "|||"
DEFAULT_PLACEHOLDER_TEXT = "Type your answer..."


# ──────────────────────────────────────────────────────────────
#  Authored content
# ──────────────────────────────────────────────────────────────

class Choice(BaseModel):
    """One selectable option on a choice message."""
    model_config = ConfigDict(frozen=True)

    text: str
    value: Any = None                           # stored datum; falls back to text
    next_message_id: Optional[int] = None
    sequence_id: Optional[str] = None
    content_key: Optional[str] = None

    @property
    def stored_value(self) -> Any:
        return self.text if self.value is None else self.value

    @property
    def is_ambiguous(self) -> bool:
        return self.next_message_id is not None and self.sequence_id is not None


class RouteCondition(BaseModel):
    """One branch of an autoroute message."""
    model_config = ConfigDict(frozen=True)

    condition: Optional[str] = None
    next_message_id: Optional[int] = None
    sequence_id: Optional[str] = None
    is_default: bool = False

    @property
    def has_destination(self) -> bool:
        return self.next_message_id is not None or bool(self.sequence_id)


class DataAction(BaseModel):
    """A single mutation of the data store, or a fire-and-forget event."""
    model_config = ConfigDict(frozen=True)

    type: DataActionType
    key: Optional[str] = None
    value: Any = None
    event: Optional[str] = None
    data: dict[str, Any] = {}


class Message(BaseModel):
    """
    A single authored message.

    ``type`` decides how the runtime treats it: bot/user/image/system are
    displayed, choice/textInput suspend delivery until the caller answers,
    autoroute picks the next destination and dataAction mutates the store.
    """
    model_config = ConfigDict(frozen=True)

    id: int
    type: MessageType = MessageType.BOT
    text: str = ""
    delay: int = 0                              # milliseconds
    has_explicit_delay: bool = False
    next_message_id: Optional[int] = None
    sequence_id: Optional[str] = None           # cross-sequence jump after this message
    store_key: Optional[str] = None
    placeholder_text: str = DEFAULT_PLACEHOLDER_TEXT
    choices: list[Choice] = []
    routes: list[RouteCondition] = []
    data_actions: list[DataAction] = []
    image_path: Optional[str] = None
    content_key: Optional[str] = None
    selected_choice_text: Optional[str] = None  # set on the logged copy once answered

    @property
    def sender(self) -> str:
        return "user" if self.type == MessageType.USER else "bot"

    @property
    def is_interactive(self) -> bool:
        return self.type in INTERACTIVE_TYPES

    @property
    def is_silent(self) -> bool:
        return self.type in SILENT_TYPES

    @property
    def destinations(self) -> list[int]:
        """Every in-sequence message id this message can continue to."""
        ids = []
        if self.next_message_id is not None:
            ids.append(self.next_message_id)
        ids.extend(c.next_message_id for c in self.choices if c.next_message_id is not None)
        ids.extend(r.next_message_id for r in self.routes if r.next_message_id is not None)
        return ids

    @property
    def jumps_sequence(self) -> bool:
        """True when any continuation leaves the current sequence."""
        if self.sequence_id:
            return True
        return any(c.sequence_id for c in self.choices) or any(r.sequence_id for r in self.routes)


class Sequence(BaseModel):
    """A named, ordered collection of messages forming one conversational unit."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    messages: list[Message]

    _index: dict[int, Message] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        # Last message wins on duplicate ids; the validator reports those
        self._index = {m.id: m for m in self.messages}

    @property
    def message_index(self) -> dict[int, Message]:
        return self._index

    @property
    def first_message_id(self) -> Optional[int]:
        if not self.messages:
            return None
        return min(m.id for m in self.messages)

    def get_message(self, message_id: int) -> Optional[Message]:
        return self.message_index.get(message_id)

    def has_message(self, message_id: int) -> bool:
        return message_id in self.message_index


# ──────────────────────────────────────────────────────────────
#  Validation results
# ──────────────────────────────────────────────────────────────

class ValidationIssue(BaseModel):
    """A structural problem found while loading a sequence."""
    model_config = ConfigDict(frozen=True)

    severity: Severity
    code: str                                   # e.g. DUPLICATE_ID, UNREACHABLE_MESSAGE
    message: str
    message_id: Optional[int] = None
    sequence_id: Optional[str] = None

    def __str__(self) -> str:
        location = f" (message {self.message_id})" if self.message_id is not None else ""
        seq = f' in sequence "{self.sequence_id}"' if self.sequence_id else ""
        return f"[{self.severity.value}] {self.code}: {self.message}{location}{seq}"


class ValidationResult(BaseModel):
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, issues: list[ValidationIssue]) -> None:
        for issue in issues:
            if issue.severity == Severity.ERROR:
                self.errors.append(issue)
            else:
                self.warnings.append(issue)


class LoadResult(BaseModel):
    """Outcome of loading raw sequence configuration."""
    sequence: Optional[Sequence] = None
    validation: ValidationResult = Field(default_factory=ValidationResult)

    @property
    def ok(self) -> bool:
        return self.sequence is not None and self.validation.is_valid


# ──────────────────────────────────────────────────────────────
#  Runtime
# ──────────────────────────────────────────────────────────────

class ConversationRun(BaseModel):
    """
    Execution state of one running conversation.
    Owned by the delivery queue; log entries are replaced by id, never edited.
    """
    active_sequence_id: str = ""
    message_log: list[Message] = []
    pending_message: Optional[Message] = None

    def replace_logged(self, updated: Message) -> bool:
        """Swap the most recent logged entry with the same id and type."""
        for i in range(len(self.message_log) - 1, -1, -1):
            logged = self.message_log[i]
            if logged.id == updated.id and logged.type == updated.type:
                self.message_log[i] = updated
                return True
        return False


# ──────────────────────────────────────────────────────────────
#  Errors
# ──────────────────────────────────────────────────────────────

class SequenceValidationError(ValueError):
    """Raised when a sequence with blocking validation errors is registered."""

    def __init__(self, sequence_id: str, errors: list[ValidationIssue]):
        self.sequence_id = sequence_id
        self.errors = errors
        detail = "; ".join(f"{e.code}: {e.message}" for e in errors)
        super().__init__(f"Invalid sequence '{sequence_id}': {detail}")


class InvalidResolutionError(ValueError):
    """Raised when a caller answers an interactive message incorrectly."""


class SequenceNotFoundError(LookupError):
    """Raised when a conversation is started on a sequence that is not registered."""

    def __init__(self, sequence_id: str):
        self.sequence_id = sequence_id
        super().__init__(f"Sequence '{sequence_id}' is not registered")
