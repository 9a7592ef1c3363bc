"""Render reconstructed sessions as TOML transcripts."""

import json
import re
from datetime import datetime
from pathlib import Path
from typing import Optional

from .models import ConversationPair, Session, ToolInvocation

# Characters TOML forbids in literal strings (tab and newline are allowed)
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")


def format_timestamp(value: Optional[datetime]) -> str:
    """Format a timestamp as RFC 3339 for TOML."""
    if value is None:
        return ""
    return value.isoformat()


def escape_toml_string(s: str) -> str:
    """Escape a string for TOML basic string (double quotes)."""
    escaped = s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return CONTROL_CHARS.sub(lambda m: f"\\u{ord(m.group()):04x}", escaped)


def render_multiline(key: str, value: str) -> list[str]:
    """Render text as a literal multi-line string where TOML allows it."""
    if "'''" in value or value.endswith("'") or CONTROL_CHARS.search(value):
        return [f'{key} = "{escape_toml_string(value)}"']
    # The newline after the opening delimiter is not part of the value
    return [f"{key} = '''", value + "'''"]


def render_tool_use_toml(tool: ToolInvocation) -> list[str]:
    """Render a tool invocation and its result as TOML lines."""
    lines = []
    lines.append("[[turns.tool_uses]]")
    lines.append(f'tool = "{escape_toml_string(tool.tool_name)}"')
    lines.append(f'id = "{escape_toml_string(tool.tool_id)}"')
    lines.append(f'timestamp = "{format_timestamp(tool.timestamp)}"')
    if tool.is_error:
        lines.append("is_error = true")

    if tool.input:
        lines.append("")
        lines.append("[turns.tool_uses.input]")
        for key, value in tool.input.items():
            key = json.dumps(str(key))
            if isinstance(value, str):
                if "\n" in value or len(value) > 80:
                    lines.extend(render_multiline(key, value))
                else:
                    lines.append(f'{key} = "{escape_toml_string(value)}"')
            elif isinstance(value, bool):
                lines.append(f"{key} = {str(value).lower()}")
            elif isinstance(value, (int, float)):
                lines.append(f"{key} = {value}")
            else:
                # Complex value - serialize as JSON string
                lines.append(f'{key} = "{escape_toml_string(json.dumps(value))}"')

    if tool.result is not None:
        lines.append("")
        lines.append("[turns.tool_uses.result]")
        lines.extend(render_multiline("content", tool.result))

    return lines


def render_pair_toml(number: int, pair: ConversationPair) -> list[str]:
    lines = []
    lines.append("[[turns]]")
    lines.append(f"number = {number}")
    lines.append(f'user_time = "{format_timestamp(pair.user_time)}"')
    lines.append(f'assistant_time = "{format_timestamp(pair.assistant_time)}"')
    lines.append(f"response_time = {pair.response_time:.1f}")
    lines.append(f"input_tokens = {pair.token_usage.input_tokens}")
    lines.append(f"output_tokens = {pair.token_usage.output_tokens}")
    if pair.is_sidechain:
        lines.append("is_sidechain = true")
    lines.append("")

    lines.append("[turns.user]")
    lines.extend(render_multiline("content", pair.user_content))
    lines.append("")

    lines.append("[turns.assistant]")
    lines.extend(render_multiline("content", pair.assistant_content))
    thinking = "\n".join(block.text for block in pair.thinking_blocks)
    if thinking.strip():
        lines.extend(render_multiline("thinking", thinking))
    lines.append("")

    for tool in pair.all_tool_uses:
        lines.extend(render_tool_use_toml(tool))
        lines.append("")

    for thread in pair.sub_agent_threads:
        lines.append("[[turns.sub_agents]]")
        lines.append(f'command_time = "{format_timestamp(thread.command_time)}"')
        lines.extend(render_multiline("command", thread.command_text))
        if thread.responses:
            lines.extend(render_multiline("response", "\n\n".join(thread.responses)))
        lines.append("")

    return lines


def render_session_toml(session: Session) -> str:
    """Render a session as a TOML document."""
    lines = []

    lines.append("[session]")
    lines.append(f'id = "{escape_toml_string(session.session_id)}"')
    lines.append(f'project = "{escape_toml_string(session.project_name)}"')
    if session.project_path:
        lines.append(f'project_path = "{escape_toml_string(session.project_path)}"')
    if session.summary:
        lines.append(f'summary = "{escape_toml_string(session.summary)}"')
    if session.start_time:
        lines.append(f'started_at = "{format_timestamp(session.start_time)}"')
    if session.end_time:
        lines.append(f'ended_at = "{format_timestamp(session.end_time)}"')
    tokens = session.metrics.token_usage
    lines.append(f"input_tokens = {tokens.input_tokens}")
    lines.append(f"output_tokens = {tokens.output_tokens}")
    lines.append(f"cache_creation_tokens = {tokens.cache_creation_input_tokens}")
    lines.append(f"cache_read_tokens = {tokens.cache_read_input_tokens}")
    lines.append(f"tool_count = {session.total_tools}")
    lines.append("")

    for number, pair in enumerate(session.conversation_pairs, start=1):
        lines.extend(render_pair_toml(number, pair))

    return "\n".join(lines)


def render_session_to_file(session: Session, output_dir: Path) -> Path:
    """Render a session to a TOML file under a per-project directory."""
    project_dir = output_dir / session.project_name
    project_dir.mkdir(parents=True, exist_ok=True)

    if session.start_time:
        date_str = session.start_time.strftime("%Y-%m-%d")
    else:
        date_str = "unknown-date"

    short_id = session.session_id[:8]
    output_path = project_dir / f"{date_str}-{short_id}.toml"
    output_path.write_text(render_session_toml(session), encoding="utf-8")

    return output_path
