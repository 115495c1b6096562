"""Just enough of the OpenAI chat-completions request shape to pull out user text."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

__all__ = [
    "ChatMessage",
    "PartsContent",
    "TextContent",
    "extract_content_text",
    "last_user_text",
    "parse_chat_request",
    "parse_content",
]


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str


@dataclass(frozen=True, slots=True)
class PartsContent:
    parts: tuple[str | None, ...]


Content = TextContent | PartsContent


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: str
    content: Content


def parse_content(raw: object) -> Content:
    if raw is None:
        return TextContent("")
    if isinstance(raw, str):
        return TextContent(raw)
    if isinstance(raw, list):
        parts: list[str | None] = []
        for part in raw:
            if not isinstance(part, Mapping):
                raise ValueError("content parts must be objects.")
            text = part.get("text")
            if text is not None and not isinstance(text, str):
                raise ValueError("content part text must be a string.")
            parts.append(text)
        return PartsContent(tuple(parts))
    raise ValueError("content must be a string or a list of parts.")


def parse_chat_request(raw: object) -> list[ChatMessage]:
    if not isinstance(raw, Mapping):
        raise ValueError("request body must be an object.")
    messages = raw.get("messages")
    if not isinstance(messages, list):
        raise ValueError("messages must be a list.")
    parsed: list[ChatMessage] = []
    for message in messages:
        if not isinstance(message, Mapping):
            raise ValueError("each message must be an object.")
        role = message.get("role")
        if not isinstance(role, str):
            raise ValueError("message role must be a string.")
        parsed.append(ChatMessage(role=role, content=parse_content(message.get("content"))))
    return parsed


def extract_content_text(content: Content) -> str | None:
    if isinstance(content, TextContent):
        return content.text
    for text in content.parts:
        if text is not None and text.strip():
            return text
    return None


def last_user_text(messages: list[ChatMessage]) -> str | None:
    """Trimmed text of the last ``user`` message, or ``None`` when there is nothing to forward."""
    for message in reversed(messages):
        if message.role.lower() != "user":
            continue
        text = extract_content_text(message.content)
        if text is None:
            return None
        text = text.strip()
        return text or None
    return None
