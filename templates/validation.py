"""
Structural validation of sequences.

Errors block a sequence from being registered; warnings are logged only.
Every check is a small function returning a list of issues so the set of
checks can be read top to bottom in ``validate_sequence``.
"""
from __future__ import annotations

from collections import Counter, deque
from typing import Optional

from models.schemas import (
    MessageType, Message, Sequence, Severity, ValidationIssue, ValidationResult,
)
from templates.resolver import has_balanced_braces
from utils.conditions import looks_well_formed

# Types that never display anything, so an explicit delay on them is meaningless
# Types the delivery queue never paces
NON_DISPLAY_TYPES = frozenset({MessageType.AUTOROUTE, MessageType.DATA_ACTION})


def _error(code: str, text: str, seq: Sequence, message_id: Optional[int] = None) -> ValidationIssue:
    return ValidationIssue(
        severity=Severity.ERROR, code=code, message=text,
        message_id=message_id, sequence_id=seq.id or None,
    )


def _warning(code: str, text: str, seq: Sequence, message_id: Optional[int] = None) -> ValidationIssue:
    return ValidationIssue(
        severity=Severity.WARNING, code=code, message=text,
        message_id=message_id, sequence_id=seq.id or None,
    )


# ──────────────────────────────────────────────────────────────
#  Errors
# ──────────────────────────────────────────────────────────────

def check_header(seq: Sequence) -> list[ValidationIssue]:
    issues = []
    if not seq.id.strip():
        issues.append(_error("EMPTY_SEQUENCE_ID", "Sequence id is empty", seq))
    if not seq.name.strip():
        issues.append(_error("EMPTY_SEQUENCE_NAME", "Sequence name is empty", seq))
    if not seq.messages:
        issues.append(_error("NO_MESSAGES", "Sequence has no messages", seq))
    return issues


def check_duplicate_ids(seq: Sequence) -> list[ValidationIssue]:
    counts = Counter(m.id for m in seq.messages)
    return [
        _error("DUPLICATE_ID", f"Message id {mid} is used {n} times", seq, mid)
        for mid, n in sorted(counts.items()) if n > 1
    ]


def check_references(seq: Sequence) -> list[ValidationIssue]:
    issues = []
    for msg in seq.messages:
        if msg.next_message_id is not None and not seq.has_message(msg.next_message_id):
            issues.append(_error(
                "DANGLING_REFERENCE",
                f"nextMessageId {msg.next_message_id} does not exist", seq, msg.id,
            ))
        for i, choice in enumerate(msg.choices):
            if choice.next_message_id is not None and not seq.has_message(choice.next_message_id):
                issues.append(_error(
                    "DANGLING_REFERENCE",
                    f"Choice {i} ('{choice.text}') points to missing message {choice.next_message_id}",
                    seq, msg.id,
                ))
        for i, route in enumerate(msg.routes):
            if route.next_message_id is not None and not seq.has_message(route.next_message_id):
                issues.append(_error(
                    "DANGLING_REFERENCE",
                    f"Route {i} points to missing message {route.next_message_id}", seq, msg.id,
                ))
    return issues


def check_destinations(seq: Sequence) -> list[ValidationIssue]:
    issues = []
    for msg in seq.messages:
        for i, choice in enumerate(msg.choices):
            if choice.next_message_id is None and not choice.sequence_id:
                issues.append(_error(
                    "MISSING_DESTINATION",
                    f"Choice {i} ('{choice.text}') has neither nextMessageId nor sequenceId",
                    seq, msg.id,
                ))
        for i, route in enumerate(msg.routes):
            if not route.has_destination:
                issues.append(_error(
                    "MISSING_DESTINATION",
                    f"Route {i} has neither nextMessageId nor sequenceId", seq, msg.id,
                ))
    return issues


def check_type_requirements(seq: Sequence) -> list[ValidationIssue]:
    issues = []
    for msg in seq.messages:
        if msg.type == MessageType.AUTOROUTE:
            defaults = [r for r in msg.routes if r.is_default]
            if not msg.routes:
                issues.append(_error("NO_ROUTES", "Autoroute message has no routes", seq, msg.id))
            elif not defaults:
                issues.append(_error("NO_DEFAULT_ROUTE", "Autoroute message has no default route", seq, msg.id))
            elif len(defaults) > 1:
                issues.append(_error(
                    "MULTIPLE_DEFAULT_ROUTES",
                    f"Autoroute message has {len(defaults)} default routes", seq, msg.id,
                ))
        elif msg.type == MessageType.CHOICE and not msg.choices:
            issues.append(_error("NO_CHOICES", "Choice message has no choices", seq, msg.id))
        elif msg.type == MessageType.IMAGE and not msg.image_path:
            issues.append(_error("MISSING_IMAGE_PATH", "Image message has no imagePath", seq, msg.id))
    return issues


# ──────────────────────────────────────────────────────────────
#  Warnings
# ──────────────────────────────────────────────────────────────

def reachable_ids(seq: Sequence) -> set[int]:
    """Ids reachable from the first message over next/choice/route edges."""
    start = seq.first_message_id
    if start is None:
        return set()
    seen = {start}
    pending = deque([start])
    while pending:
        msg = seq.get_message(pending.popleft())
        if msg is None:
            continue
        for dest in msg.destinations:
            if dest not in seen and seq.has_message(dest):
                seen.add(dest)
                pending.append(dest)
    return seen


def check_reachability(seq: Sequence) -> list[ValidationIssue]:
    reachable = reachable_ids(seq)
    return [
        _warning("UNREACHABLE_MESSAGE", f"Message {m.id} cannot be reached from message {seq.first_message_id}", seq, m.id)
        for m in seq.messages if m.id not in reachable
    ]


def check_cycles(seq: Sequence) -> list[ValidationIssue]:
    """Detect loops formed purely by nextMessageId chains."""
    issues = []
    reported: set[int] = set()
    for msg in seq.messages:
        path: list[int] = []
        on_path: set[int] = set()
        current: Optional[Message] = msg
        while current is not None and current.next_message_id is not None:
            if current.id in on_path:
                cycle = path[path.index(current.id):]
                anchor = min(cycle)
                if anchor not in reported:
                    reported.add(anchor)
                    chain = " → ".join(str(i) for i in cycle + [current.id])
                    issues.append(_warning("CIRCULAR_CHAIN", f"Circular nextMessageId chain: {chain}", seq, anchor))
                break
            path.append(current.id)
            on_path.add(current.id)
            current = seq.get_message(current.next_message_id)
    return issues


def check_ambiguous_choices(seq: Sequence) -> list[ValidationIssue]:
    return [
        _warning(
            "AMBIGUOUS_CHOICE",
            f"Choice '{c.text}' sets both nextMessageId and sequenceId; sequenceId wins",
            seq, msg.id,
        )
        for msg in seq.messages for c in msg.choices if c.is_ambiguous
    ]


def check_delays(seq: Sequence) -> list[ValidationIssue]:
    return [
        _warning(
            "DELAY_ON_NON_DISPLAY",
            f"{msg.type.value} message has an explicit delay of {msg.delay}ms that is never used",
            seq, msg.id,
        )
        for msg in seq.messages
        if msg.type in NON_DISPLAY_TYPES and msg.has_explicit_delay and msg.delay
    ]


def check_templates(seq: Sequence) -> list[ValidationIssue]:
    issues = []
    for msg in seq.messages:
        texts = [msg.text, msg.placeholder_text, *(c.text for c in msg.choices)]
        if any(not has_balanced_braces(t) for t in texts):
            issues.append(_warning("UNBALANCED_TEMPLATE", "Template has unbalanced { } delimiters", seq, msg.id))
    return issues


def check_conditions(seq: Sequence) -> list[ValidationIssue]:
    return [
        _warning("SUSPICIOUS_CONDITION", f"Route condition looks malformed: {r.condition!r}", seq, msg.id)
        for msg in seq.messages for r in msg.routes
        if r.condition and not r.is_default and not looks_well_formed(r.condition)
    ]


def check_dead_ends(seq: Sequence) -> list[ValidationIssue]:
    """
    Text inputs and data actions must lead somewhere; displayed messages may
    end a sequence. A cross-sequence jump counts as a continuation.
    """
    issues = []
    for msg in seq.messages:
        if msg.type not in (MessageType.TEXT_INPUT, MessageType.DATA_ACTION):
            continue
        if msg.next_message_id is None and not msg.jumps_sequence:
            issues.append(_warning("DEAD_END", f"{msg.type.value} message has no continuation", seq, msg.id))
    return issues


ERROR_CHECKS = (
    check_header,
    check_duplicate_ids,
    check_references,
    check_destinations,
    check_type_requirements,
)

WARNING_CHECKS = (
    check_reachability,
    check_cycles,
    check_ambiguous_choices,
    check_delays,
    check_templates,
    check_conditions,
    check_dead_ends,
)


def validate_sequence(seq: Sequence) -> ValidationResult:
    """Run every structural check against ``seq``."""
    result = ValidationResult()
    for check in ERROR_CHECKS + WARNING_CHECKS:
        result.extend(check(seq))
    return result
