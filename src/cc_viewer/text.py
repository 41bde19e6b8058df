"""Searchable text extraction and lightweight metadata scans."""

import json
import logging
from pathlib import Path
from typing import Any

from cc_viewer.entries import ContentBlock, TextBlock, ThinkingBlock, decode_content
from cc_viewer.models import ConversationMetadata

LOGGER = logging.getLogger(__name__)

FIRST_MESSAGE_SCAN_LINES = 50
FIRST_MESSAGE_PREVIEW_CHARS = 100


def extract_text(content: str | list[ContentBlock]) -> str:
    """Return the human-readable text of message content.

    Plain string content is returned as is. For block arrays, text and
    thinking blocks are joined with a single space; tool inputs and outputs
    are not prose and are skipped.
    """
    if isinstance(content, str):
        return content

    parts: list[str] = []
    for block in content:
        match block:
            case TextBlock(text=text):
                parts.append(text)
            case ThinkingBlock(thinking=thinking):
                parts.append(thinking)
    return " ".join(parts)


def extract_entry_text(record: Any) -> str:
    """Extract text from a raw JSON log record via its ``message`` payload."""
    if not isinstance(record, dict):
        return ""
    message = record.get("message")
    if not isinstance(message, dict):
        return ""
    return extract_text(decode_content(message.get("content")))


def _read_lines(path: Path) -> list[str]:
    # A torn multi-byte character only spoils its own line
    return [line for line in path.read_text(encoding="utf-8", errors="replace").split("\n") if line]


def _iter_records(lines: list[str]):
    for line in lines:
        try:
            record = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(record, dict):
            yield record


def get_first_user_message(path: Path) -> str | None:
    """Return a short preview of the first plain-text user message."""
    try:
        lines = _read_lines(path)
    except OSError as e:
        LOGGER.debug("Cannot read %s: %s", path, e)
        return None

    for record in _iter_records(lines[:FIRST_MESSAGE_SCAN_LINES]):
        if record.get("type") != "user":
            continue
        message = record.get("message")
        if isinstance(message, dict) and message.get("content"):
            content = message["content"]
            text = content if isinstance(content, str) else ""
            return text[:FIRST_MESSAGE_PREVIEW_CHARS]
    return None


def get_conversation_metadata(path: Path) -> ConversationMetadata:
    """Count messages and find the time span and model of a conversation file."""
    metadata = ConversationMetadata()
    try:
        lines = _read_lines(path)
    except OSError as e:
        LOGGER.debug("Cannot read %s: %s", path, e)
        return metadata

    for record in _iter_records(lines):
        entry_type = record.get("type")
        if entry_type not in ("user", "assistant"):
            continue

        metadata.message_count += 1
        timestamp = record.get("timestamp")
        if isinstance(timestamp, str) and timestamp:
            if metadata.first_timestamp is None:
                metadata.first_timestamp = timestamp
            metadata.last_timestamp = timestamp

        if entry_type == "assistant" and metadata.model is None:
            message = record.get("message")
            if isinstance(message, dict) and isinstance(message.get("model"), str):
                metadata.model = message["model"]

    return metadata
