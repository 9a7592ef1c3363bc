"""Decode Claude Code JSONL session files into typed entries."""

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .models import (
    ContentItem,
    Entry,
    EntryType,
    OtherItem,
    TextItem,
    ThinkingItem,
    TokenUsage,
    ToolResultItem,
    ToolUseItem,
)

MAX_TOOL_RESULT_CHARS = 10000
TRUNCATION_MARKER = "...[truncated]"

# Files above this size are streamed line by line instead of read whole
STREAM_THRESHOLD_BYTES = 5 * 1024 * 1024

TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")


def truncate_tool_result(text: str) -> str:
    """Cap pathological tool output at MAX_TOOL_RESULT_CHARS."""
    if len(text) > MAX_TOOL_RESULT_CHARS:
        return text[:MAX_TOOL_RESULT_CHARS] + TRUNCATION_MARKER
    return text


def parse_timestamp(value, now: datetime) -> datetime:
    """Parse an ISO-8601 timestamp, falling back to ``now``."""
    if not isinstance(value, str) or not TIMESTAMP_PATTERN.match(value):
        return now
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return now
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def flatten_result_content(content) -> str:
    """Flatten tool result content (string, list of blocks or object) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                text = block.get("text") or block.get("content")
                parts.append(text if isinstance(text, str) else json.dumps(block))
            else:
                parts.append(str(block))
        return "\n".join(parts)
    if isinstance(content, dict):
        text = content.get("text")
        return text if isinstance(text, str) else json.dumps(content)
    if content is None:
        return ""
    return str(content)


def decode_tool_result(block: dict) -> ToolResultItem:
    if block.get("content"):
        text = flatten_result_content(block["content"])
    elif block.get("text"):
        text = flatten_result_content(block["text"])
    elif block.get("result") is not None:
        result = block["result"]
        text = result if isinstance(result, str) else json.dumps(result)
    else:
        text = ""
    return ToolResultItem(
        tool_use_id=str(block.get("tool_use_id", "")),
        content=truncate_tool_result(text),
        is_error=bool(block.get("is_error", False)),
    )


def decode_content_item(block) -> Optional[ContentItem]:
    """Decode one element of a message content array."""
    if isinstance(block, str):
        return TextItem(block)
    if not isinstance(block, dict):
        return None

    block_type = block.get("type")
    if block_type == "text":
        text = block.get("text")
        return TextItem(text if isinstance(text, str) else "")
    if block_type == "thinking":
        thinking = block.get("thinking")
        return ThinkingItem(thinking if isinstance(thinking, str) else "")
    if block_type == "tool_use":
        tool_input = block.get("input")
        return ToolUseItem(
            name=block.get("name") or "unknown",
            id=block.get("id"),
            input=tool_input if isinstance(tool_input, dict) else {},
        )
    # Older logs echo results without a type tag
    if block_type == "tool_result" or "tool_use_id" in block:
        return decode_tool_result(block)
    data = {k: v for k, v in block.items() if k != "type"}
    return OtherItem(type=str(block_type or "unknown"), data=data)


def decode_content(content):
    """Decode message content into a string or a list of content items."""
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        content = [content]
    if isinstance(content, list):
        items = []
        for block in content:
            item = decode_content_item(block)
            if item is not None:
                items.append(item)
        return items
    return ""


def decode_usage(raw: dict) -> Optional[TokenUsage]:
    message = raw.get("message")
    usage = raw.get("usage")
    if not isinstance(usage, dict) and isinstance(message, dict):
        usage = message.get("usage")
    if not isinstance(usage, dict):
        return None

    def count(key: str) -> int:
        value = usage.get(key)
        return value if isinstance(value, int) else 0

    return TokenUsage(
        input_tokens=count("input_tokens"),
        output_tokens=count("output_tokens"),
        cache_creation_input_tokens=count("cache_creation_input_tokens"),
        cache_read_input_tokens=count("cache_read_input_tokens"),
    )


def _optional_str(value) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def entry_from_dict(raw: dict, now: datetime) -> Optional[Entry]:
    """Build an Entry from a decoded JSON object, or None without a type."""
    raw_type = raw.get("type")
    if not isinstance(raw_type, str) or not raw_type:
        return None

    message = raw.get("message")
    raw_content = message.get("content") if isinstance(message, dict) else None
    if raw_content is None and "content" in raw:
        # Flat lines carry content at the top level
        if raw_type == "tool_result":
            raw_content = truncate_tool_result(flatten_result_content(raw["content"]))
        else:
            raw_content = raw["content"]

    session_id = (
        raw.get("session_id") or raw.get("conversation_id") or raw.get("sessionId")
    )

    return Entry(
        type=EntryType.from_raw(raw_type),
        timestamp=parse_timestamp(raw.get("timestamp"), now),
        content=decode_content(raw_content),
        has_message=bool(raw_content),
        usage=decode_usage(raw),
        uuid=_optional_str(raw.get("uuid")),
        parent_uuid=_optional_str(raw.get("parentUuid")),
        session_id=_optional_str(session_id),
        is_meta=bool(raw.get("isMeta", False)),
        is_sidechain=bool(raw.get("isSidechain", False)),
        is_compact_summary=raw.get("isCompactSummary") is True,
        cwd=_optional_str(raw.get("cwd")),
        project_name=_optional_str(raw.get("project_name") or raw.get("project")),
    )


def decode_line(line: str, now: Optional[datetime] = None) -> Optional[Entry]:
    """Decode one JSONL line. Returns None for anything that is not an entry."""
    line = line.strip()
    if not line or line[0] != "{" or line[-1] != "}":
        return None
    # Cheap filter before paying for a full decode
    if '"type"' not in line:
        return None
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None
    return entry_from_dict(raw, now or datetime.now(timezone.utc))


def iter_entries(lines: Iterable[str]) -> Iterator[Entry]:
    """Yield entries from lines, skipping malformed ones."""
    now = datetime.now(timezone.utc)
    for line in lines:
        entry = decode_line(line, now)
        if entry is not None:
            yield entry


def decode_lines(lines: Iterable[str]) -> tuple[list[Entry], Optional[Entry]]:
    """Decode lines into (entries, first_entry)."""
    entries = list(iter_entries(lines))
    return entries, (entries[0] if entries else None)


def decode_text(text: str) -> tuple[list[Entry], Optional[Entry]]:
    return decode_lines(text.split("\n"))


def read_file(file_path: Path) -> tuple[list[Entry], Optional[Entry]]:
    """Read a whole file at once; faster for small files."""
    return decode_text(Path(file_path).read_text(encoding="utf-8"))


def stream_file(file_path: Path) -> tuple[list[Entry], Optional[Entry]]:
    """Decode a file line by line without holding the raw text in memory."""
    with open(file_path, "r", encoding="utf-8") as f:
        return decode_lines(f)


def decode_file(
    file_path: Path, stream_threshold: int = STREAM_THRESHOLD_BYTES
) -> tuple[list[Entry], Optional[Entry]]:
    """Decode a session file, streaming it when it is larger than the threshold.

    Raises OSError or UnicodeDecodeError when the file cannot be read.
    """
    file_path = Path(file_path)
    if file_path.stat().st_size > stream_threshold:
        return stream_file(file_path)
    return read_file(file_path)
