"""
Flow walker: collects the run of messages that can be delivered in one go.

Starting from a message id, follow ``nextMessageId`` and collect messages
until one of these stops the walk (the stopping message is included):
  - an interactive message (choice / textInput): delivery must suspend
  - an autoroute: its destination depends on the store at delivery time
  - a message with a message-level ``sequenceId``: the flow leaves the sequence
  - a message without ``nextMessageId``: end of the chain
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import structlog

from models.schemas import Message, MessageType, Sequence

logger = structlog.get_logger()


@dataclass
class WalkResult:
    messages: list[Message] = field(default_factory=list)
    stop_reason: str = "end"            # end | interactive | autoroute | sequence_jump | missing | depth_limit
    next_sequence_id: Optional[str] = None

    @property
    def last(self) -> Optional[Message]:
        return self.messages[-1] if self.messages else None


class FlowWalker:

    def __init__(self, max_depth: int = 50):
        self.max_depth = max_depth

    def walk(self, sequence: Sequence, start_id: Optional[int]) -> WalkResult:
        result = WalkResult()
        current_id = start_id
        visited: set[int] = set()

        while current_id is not None:
            if len(result.messages) >= self.max_depth:
                logger.warning("walk_depth_limit", sequence_id=sequence.id,
                               start_id=start_id, max_depth=self.max_depth)
                result.stop_reason = "depth_limit"
                return result

            msg = sequence.get_message(current_id)
            if msg is None:
                logger.warning("walk_missing_message", sequence_id=sequence.id, message_id=current_id)
                result.stop_reason = "missing"
                return result
            if current_id in visited:
                # A pure next-chain loop; the validator reports it, delivery stops here
                logger.warning("walk_cycle", sequence_id=sequence.id, message_id=current_id)
                result.stop_reason = "end"
                return result
            visited.add(current_id)
            result.messages.append(msg)

            if msg.is_interactive:
                result.stop_reason = "interactive"
                return result
            if msg.type == MessageType.AUTOROUTE:
                result.stop_reason = "autoroute"
                return result
            if msg.sequence_id:
                result.stop_reason = "sequence_jump"
                result.next_sequence_id = msg.sequence_id
                return result
            current_id = msg.next_message_id

        return result
