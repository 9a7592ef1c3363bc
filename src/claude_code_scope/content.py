"""Extract text, thinking, tools and usage from entries, and clean up noisy text.

The cleanup functions are heuristics over free text. They are tuned for the
shapes Claude Code produces and are not guaranteed to be correct for every
message; they only promise to always return a non-empty string.
"""

import re
from typing import Optional

from .models import (
    Entry,
    ThinkingBlock,
    ThinkingItem,
    TextItem,
    TokenUsage,
    ToolInvocation,
    ToolResult,
    ToolResultItem,
    ToolUseItem,
)

NO_CONTENT = "(No content)"
CONTINUATION_PLACEHOLDER = "[Continued session - see full detail for context]"
ARTIFACT_PLACEHOLDER = "[See full detail for complete context]"

CONTINUATION_PREAMBLE = "This session is being continued from a previous conversation"

# Markers showing text contains an embedded tool-execution transcript
ARTIFACT_MARKERS = (
    "🔧 TOOLS EXECUTION FLOW:",
    "🧠 THINKING PROCESS:",
    "[Thinking",
    "File:",
    "Command:",
    "pattern:",
    "path:",
)
ARTIFACT_PATTERNS = (
    re.compile(r"\[\d+\]\s+(Read|Write|Edit|Bash|Glob|Grep|Task)"),
    re.compile(r"^\s*\[\d+\]\s+\w+$", re.MULTILINE),
)
ARTIFACT_LINE_PREFIXES = ("File:", "Command:", "pattern:", "path:")
ARTIFACT_LINE_PATTERNS = (
    re.compile(r"^\s*\[Thinking \d+\]"),
    re.compile(r"^\s*\[\d+\]\s+\w+"),
)
TOOL_INDEX_PREFIX = re.compile(r"^\s*\[\d+\]\s*")

REQUEST_INDICATORS = (
    re.compile(r"^(The user|User|ユーザー).*[:：]", re.IGNORECASE),
    re.compile(r"requested|asked|want|リクエスト|依頼|要求", re.IGNORECASE),
    re.compile(r"表示方法|見直し|修正|改善"),
)

COMPACT_CONTINUATION_PATTERNS = (
    re.compile(r"Please continue the conversation from where we left it off", re.IGNORECASE),
    re.compile(r"without asking the user any further questions", re.IGNORECASE),
    re.compile(r"Continue with the last task that you were asked to work on", re.IGNORECASE),
    re.compile(r"continue.*conversation.*from.*where.*left", re.IGNORECASE),
    re.compile(r"continue.*last.*task", re.IGNORECASE),
    re.compile(r"つづけて|続けて|継続|続行|作業.*続|続き.*作業"),
)

CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
WHITESPACE_RUN = re.compile(r"\s+")


def content_to_text(entry: Entry) -> str:
    """Concatenate the text items of an entry."""
    if isinstance(entry.content, str):
        return entry.content
    return "".join(item.text for item in entry.content if isinstance(item, TextItem))


# Continuation-session preambles


def is_continuation_session(text: str) -> bool:
    return CONTINUATION_PREAMBLE in text


def is_request_indicator(line: str) -> bool:
    return any(pattern.search(line) for pattern in REQUEST_INDICATORS)


def extract_continuation_request(text: str) -> str:
    """Reduce a continued-session preamble to the request restated at its end.

    Scans upward for a line that reads like a restated ask and keeps
    everything from there down. Without one, a placeholder.
    """
    lines = text.split("\n")
    for i in range(len(lines) - 1, -1, -1):
        line = lines[i].strip()
        if is_request_indicator(line):
            return "\n".join(lines[i:]).strip()
    return CONTINUATION_PLACEHOLDER


# Embedded tool-execution artifacts


def contains_tool_artifacts(text: str) -> bool:
    if any(marker in text for marker in ARTIFACT_MARKERS):
        return True
    return any(pattern.search(text) for pattern in ARTIFACT_PATTERNS)


def is_artifact_line(line: str, after_artifact: bool = False) -> bool:
    stripped = line.strip()
    if "🔧 TOOLS EXECUTION FLOW:" in line or "🧠 THINKING PROCESS:" in line:
        return True
    if line.startswith(ARTIFACT_LINE_PREFIXES):
        return True
    if any(pattern.match(line) for pattern in ARTIFACT_LINE_PATTERNS):
        return True
    # Once a transcript starts, bracketed lines belong to it
    return after_artifact and stripped.startswith("[")


def first_meaningful_line(text: str) -> Optional[str]:
    for line in text.split("\n"):
        candidate = TOOL_INDEX_PREFIX.sub("", line).strip()
        if re.search(r"\w", candidate):
            return candidate
    return None


def strip_tool_artifacts(text: str) -> str:
    """Drop tool-execution lines, keeping the prose around them."""
    kept = []
    seen_artifact = False
    for line in text.split("\n"):
        if is_artifact_line(line, seen_artifact):
            seen_artifact = True
            continue
        kept.append(line)

    prose = "\n".join(kept).strip()
    if prose:
        return prose
    return first_meaningful_line(text) or ARTIFACT_PLACEHOLDER


def clean_text(text: str) -> str:
    """Apply the continuation and artifact heuristics to a piece of text."""
    if is_continuation_session(text):
        return extract_continuation_request(text)
    if contains_tool_artifacts(text):
        return strip_tool_artifacts(text)
    return text.strip()


# Entry extractors


def extract_user_content(entry: Entry) -> str:
    if not entry.has_message:
        return NO_CONTENT
    return clean_text(content_to_text(entry))


def extract_assistant_content(entry: Entry) -> str:
    if not entry.has_message:
        return NO_CONTENT
    text = content_to_text(entry)
    if contains_tool_artifacts(text):
        return strip_tool_artifacts(text)
    return text.strip()


def extract_thinking(entry: Entry) -> tuple[int, list[ThinkingBlock]]:
    """Return (character count, blocks) for the thinking items of an entry."""
    char_count = 0
    blocks = []
    for item in entry.items:
        if isinstance(item, ThinkingItem) and item.thinking:
            char_count += len(item.thinking)
            blocks.append(ThinkingBlock(timestamp=entry.timestamp, text=item.thinking))
    return char_count, blocks


def extract_tool_invocations(entry: Entry) -> list[ToolInvocation]:
    return [
        ToolInvocation(
            tool_name=item.name,
            tool_id=item.id or "unknown",
            input=dict(item.input),
            timestamp=entry.timestamp,
        )
        for item in entry.items
        if isinstance(item, ToolUseItem)
    ]


def extract_tool_results(entry: Entry) -> dict[str, ToolResult]:
    results: dict[str, ToolResult] = {}
    for item in entry.items:
        if isinstance(item, ToolResultItem) and item.tool_use_id:
            results[item.tool_use_id] = ToolResult(
                tool_id=item.tool_use_id,
                result_text=item.content,
                is_error=item.is_error,
            )
    return results


def extract_token_usage(entry: Entry) -> TokenUsage:
    if entry.usage is None:
        return TokenUsage()
    return entry.usage.copy()


def has_actual_content(entry: Entry) -> bool:
    """True if the entry carries text, thinking or a tool call."""
    for item in entry.items:
        if isinstance(item, TextItem) and item.text.strip():
            return True
        if isinstance(item, ThinkingItem) and item.thinking:
            return True
        if isinstance(item, ToolUseItem):
            return True
    return False


def is_tool_result_notification(entry: Entry) -> bool:
    """True if a user entry only echoes tool output back to the assistant."""
    if not entry.has_message:
        return False
    if isinstance(entry.content, str):
        return "tool_use_id" in entry.content or "tool_result" in entry.content
    for item in entry.content:
        if isinstance(item, ToolResultItem):
            return True
        if isinstance(item, TextItem) and (
            "tool_use_id" in item.text or "tool_result" in item.text
        ):
            return True
    return False


def is_compact_continuation(entry: Entry) -> bool:
    """True for the instruction that resumes work after context compaction."""
    if entry.is_compact_summary:
        return True
    if not entry.has_message:
        return False
    text = content_to_text(entry)
    return any(pattern.search(text) for pattern in COMPACT_CONTINUATION_PATTERNS)


def sanitize_for_display(text: str, max_length: int) -> str:
    """Collapse text onto one line and truncate it."""
    if not text:
        return ""
    sanitized = WHITESPACE_RUN.sub(" ", text)
    sanitized = CONTROL_CHARS.sub("", sanitized).strip()
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."
    return sanitized
