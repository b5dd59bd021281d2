"""
Route Processor: picks the next destination for an autoroute message.

Conditional routes are evaluated in listed order; the first true one wins.
The default route is taken only when nothing else matched. No match and no
default is a dead end: logged and returned as an empty decision, never raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import structlog

from models.schemas import Message, RouteCondition
from utils.conditions import evaluate

logger = structlog.get_logger()


@dataclass(frozen=True)
class RouteDecision:
    next_message_id: Optional[int] = None
    sequence_id: Optional[str] = None
    route_index: Optional[int] = None
    is_default: bool = False

    @property
    def is_dead_end(self) -> bool:
        return self.next_message_id is None and not self.sequence_id


DEAD_END = RouteDecision()


def _decision(route: RouteCondition, index: int) -> RouteDecision:
    # A sequence jump takes precedence over an in-sequence id
    if route.sequence_id:
        return RouteDecision(sequence_id=route.sequence_id, route_index=index, is_default=route.is_default)
    return RouteDecision(next_message_id=route.next_message_id, route_index=index, is_default=route.is_default)


def select_route(routes: list[RouteCondition], data: dict[str, Any]) -> RouteDecision:
    """Pure route selection over a data snapshot."""
    default: Optional[tuple[int, RouteCondition]] = None
    for index, route in enumerate(routes):
        if route.is_default:
            if default is None:
                default = (index, route)
            continue
        if route.condition and evaluate(route.condition, data):
            return _decision(route, index)
    if default is not None:
        return _decision(default[1], default[0])
    return DEAD_END


class RouteProcessor:
    """Evaluates autoroute messages and logs the outcome."""

    def process(self, message: Message, data: dict[str, Any]) -> RouteDecision:
        decision = select_route(message.routes, data)
        if decision.is_dead_end:
            logger.warning("routing_dead_end",
                           message_id=message.id,
                           routes=len(message.routes))
        else:
            logger.info("route_taken",
                        message_id=message.id,
                        route_index=decision.route_index,
                        is_default=decision.is_default,
                        next_message_id=decision.next_message_id,
                        sequence_id=decision.sequence_id)
        return decision
