"""Message renderer: content key → template → multi-part expansion."""
from __future__ import annotations

from typing import Any, Optional

import structlog

from models.schemas import Choice, Message, MULTIPART_TYPES
from templates.content import ContentLibrary, resolve_content
from templates.formatters import FormatterRegistry
from templates.resolver import resolve_template, split_multipart

logger = structlog.get_logger()


class MessageRenderer:
    """Turns authored messages into display-ready copies for one data snapshot."""

    def __init__(self, formatters: FormatterRegistry = None, content: Optional[ContentLibrary] = None):
        self.formatters = formatters or FormatterRegistry()
        self.content = content

    def resolve_text(self, text: str, content_key: Optional[str], data: dict[str, Any]) -> str:
        base = resolve_content(content_key, text, self.content)
        return resolve_template(base, data, self.formatters)

    def _render_choice(self, choice: Choice, data: dict[str, Any]) -> Choice:
        text = self.resolve_text(choice.text, choice.content_key, data)
        if text == choice.text:
            return choice
        # Keep the authored text as the stored datum when no explicit value exists
        return choice.model_copy(update={"text": text, "value": choice.stored_value})

    def render(self, message: Message, data: dict[str, Any]) -> list[Message]:
        """
        Render one message. Bot and user text is split on the multi-part
        separator into sibling copies sharing id, type and delay; every other
        type renders to exactly one message.
        """
        text = self.resolve_text(message.text, message.content_key, data)
        update: dict[str, Any] = {"text": text}

        if message.choices:
            update["choices"] = [self._render_choice(c, data) for c in message.choices]
        if message.placeholder_text and "{" in message.placeholder_text:
            update["placeholder_text"] = resolve_template(message.placeholder_text, data, self.formatters)

        if message.type not in MULTIPART_TYPES:
            return [message.model_copy(update=update)]

        parts = split_multipart(text)
        if len(parts) > 1:
            logger.debug("message_split", message_id=message.id, parts=len(parts))
        return [message.model_copy(update={**update, "text": part}) for part in parts]
