"""
Delay policy: how long to wait before a message becomes visible.

  1. instant mode           → 0
  2. user messages          → 0
  3. explicit author delay  → as written
  4. choice / text input    → configured interactive delay
  5. otherwise              → reading time of the previous message,
                              base + words * per_word, clamped to [min, max]
"""
from __future__ import annotations

from typing import Optional

from config.settings import DeliveryConfig
from models.schemas import Message, MessageType


def word_count(text: str) -> int:
    return len((text or "").split())


class DelayPolicy:

    def __init__(self, config: DeliveryConfig = None):
        self.config = config or DeliveryConfig()

    def adaptive_delay(self, previous_text: str) -> int:
        raw = self.config.base_delay_ms + word_count(previous_text) * self.config.per_word_delay_ms
        return max(self.config.min_delay_ms, min(self.config.max_delay_ms, raw))

    def delay_before(self, message: Message, previous: Optional[Message] = None) -> int:
        if self.config.instant_mode:
            return 0
        if message.type == MessageType.USER:
            return 0
        if message.has_explicit_delay:
            return max(message.delay, 0)
        if message.is_interactive:
            return self.config.interactive_delay_ms
        return self.adaptive_delay(previous.text if previous else "")
