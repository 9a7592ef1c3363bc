"""Rebuild conversation turns from the flat entry stream of a session log.

A single pass folds the entries into a ``TurnState``. A genuine user entry
closes the open turn (if the assistant answered it) and opens a new one;
assistant entries accumulate tools, thinking, tokens and content into the
open turn. Tool-result echoes and sub-agent commands never open a turn.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from . import content as extractor
from .models import (
    MAX_RESPONSE_TIME_SECONDS,
    CompactContinuation,
    ConversationPair,
    Entry,
    EntryType,
    SubAgentThread,
    TextItem,
    ThinkingBlock,
    TimelineItem,
    TokenUsage,
    ToolInvocation,
    ToolResult,
    ToolUseItem,
)

SUB_AGENT_MARKERS = ("⎿ task:", "task:")

SUB_AGENT_COMPLETION_PHRASES = (
    "Task completed successfully",
    "I've completed",
    "I have completed",
    "The task has been completed",
    "All requested",
    "has been successfully",
    "完了しました",
    "タスクを完了",
    "作業を完了",
)
SUMMARY_PHRASES = ("Summary", "In summary", "To summarize", "概要", "まとめ")


def calculate_response_time(start: datetime, end: datetime) -> float:
    """Seconds between request and answer, clamped to [0, one hour]."""
    seconds = (end - start).total_seconds()
    return min(max(0.0, seconds), float(MAX_RESPONSE_TIME_SECONDS))


@dataclass
class TurnState:
    """The turn currently being reconstructed."""

    current_user: Optional[Entry] = None
    pending_tool_uses: list[ToolInvocation] = field(default_factory=list)
    pending_tool_results: dict[str, ToolResult] = field(default_factory=dict)
    thinking_blocks: list[ThinkingBlock] = field(default_factory=list)
    thinking_char_count: int = 0
    assistant_responses: list[Entry] = field(default_factory=list)
    sub_agent_threads: list[SubAgentThread] = field(default_factory=list)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    pending_task: bool = False  # a Task call is waiting for its sub-agent command

    @property
    def is_answered(self) -> bool:
        return self.current_user is not None and bool(self.assistant_responses)

    def active_thread(self) -> Optional[SubAgentThread]:
        """Oldest sub-agent thread still waiting for responses."""
        for thread in self.sub_agent_threads:
            if not thread.is_complete:
                return thread
        return None


def is_sub_agent_command(entry: Entry, state: TurnState) -> bool:
    """Heuristic: does this user entry address a sub-agent rather than open a turn?

    True right after a Task invocation, or when the turn's last tool call was
    a Task, or when the text carries the sub-agent task markers. This can
    misclassify an ordinary message that mentions ``task:``.
    """
    if state.current_user is None:
        return False
    if state.pending_task:
        return True
    if not state.pending_tool_uses:
        return False
    if state.pending_tool_uses[-1].is_task:
        return True
    text = extractor.content_to_text(entry)
    return any(marker in text for marker in SUB_AGENT_MARKERS)


def build_timeline(responses: list[Entry]) -> list[TimelineItem]:
    """Merge the content of every assistant entry of a turn in time order."""
    timeline = [
        TimelineItem(timestamp=response.timestamp, item=item)
        for response in responses
        for item in response.items
    ]
    # sort() is stable, so items of one entry keep their order
    timeline.sort(key=lambda entry: entry.timestamp)
    return timeline


class ConversationReconstructor:
    """Fold an ordered entry sequence into conversation pairs.

    Instances hold no state between calls; the same entries always produce
    the same pairs.
    """

    def __init__(self, merge_compact: bool = False):
        self.merge_compact = merge_compact

    def reconstruct(self, entries: Iterable[Entry]) -> list[ConversationPair]:
        pairs: list[ConversationPair] = []
        state = TurnState()

        for entry in entries:
            if entry.type is EntryType.USER:
                state = self._on_user(entry, state, pairs)
            elif entry.type is EntryType.ASSISTANT:
                state = self._on_assistant(entry, state)

        if state.is_answered:
            pairs.append(self._close_turn(state))

        if self.merge_compact:
            return merge_compact_continuations(pairs)
        return pairs

    def _on_user(
        self, entry: Entry, state: TurnState, pairs: list[ConversationPair]
    ) -> TurnState:
        if extractor.is_tool_result_notification(entry):
            # Plumbing, not a turn boundary; keep the results for joining
            state.pending_tool_results.update(extractor.extract_tool_results(entry))
            return state

        if is_sub_agent_command(entry, state):
            self._add_sub_agent_command(entry, state)
            state.pending_task = False
            return state

        if state.is_answered:
            pairs.append(self._close_turn(state))
        return TurnState(current_user=entry)

    def _on_assistant(self, entry: Entry, state: TurnState) -> TurnState:
        if state.current_user is None:
            return state
        if state.current_user.session_id != entry.session_id:
            # Answer from another session; the open request is orphaned
            return TurnState()

        tools = extractor.extract_tool_invocations(entry)
        state.pending_tool_uses.extend(tools)
        if any(tool.is_task for tool in tools):
            state.pending_task = True
        state.pending_tool_results.update(extractor.extract_tool_results(entry))

        char_count, blocks = extractor.extract_thinking(entry)
        state.thinking_char_count += char_count
        state.thinking_blocks.extend(blocks)

        state.token_usage.add(extractor.extract_token_usage(entry))

        self._attach_sub_agent_response(entry, state)

        if extractor.has_actual_content(entry):
            state.assistant_responses.append(entry)
        return state

    def _add_sub_agent_command(self, entry: Entry, state: TurnState) -> None:
        # A new command means any earlier thread has finished
        if state.sub_agent_threads:
            state.sub_agent_threads[-1].is_complete = True
        state.sub_agent_threads.append(
            SubAgentThread(
                command_text=extractor.extract_user_content(entry),
                command_time=entry.timestamp,
                command_uuid=entry.uuid,
            )
        )

    def _attach_sub_agent_response(self, entry: Entry, state: TurnState) -> None:
        thread = state.active_thread()
        if thread is None:
            return

        thread.responses.append(extractor.extract_assistant_content(entry))
        thread.response_times.append(entry.timestamp)

        items = entry.items
        if items and all(isinstance(item, TextItem) for item in items):
            text = next((item.text for item in items if item.text), "")
            finished = any(phrase in text for phrase in SUB_AGENT_COMPLETION_PHRASES)
            summary_like = any(phrase in text for phrase in SUMMARY_PHRASES)
            if finished or (summary_like and len(thread.responses) >= 2):
                thread.is_complete = True
                state.pending_task = False

        starts_new_task = any(
            isinstance(item, ToolUseItem) and item.name == "Task" for item in items
        )
        if starts_new_task:
            thread.is_complete = True
            state.pending_task = True

    def _close_turn(self, state: TurnState) -> ConversationPair:
        """Emit a pair anchored on the turn's last assistant response."""
        user = state.current_user
        anchor = state.assistant_responses[-1]

        all_tool_uses = []
        for tool in state.pending_tool_uses:
            result = state.pending_tool_results.get(tool.tool_id)
            all_tool_uses.append(
                ToolInvocation(
                    tool_name=tool.tool_name,
                    tool_id=tool.tool_id,
                    input=tool.input,
                    timestamp=tool.timestamp,
                    result=result.result_text if result else None,
                    is_error=result.is_error if result else False,
                )
            )

        return ConversationPair(
            user_time=user.timestamp,
            assistant_time=anchor.timestamp,
            response_time=calculate_response_time(user.timestamp, anchor.timestamp),
            user_content=extractor.extract_user_content(user),
            assistant_content=extractor.extract_assistant_content(anchor),
            tool_uses=[tool for tool in all_tool_uses if not tool.is_task],
            all_tool_uses=all_tool_uses,
            thinking_blocks=list(state.thinking_blocks),
            thinking_char_count=state.thinking_char_count,
            token_usage=state.token_usage.copy(),
            user_uuid=user.uuid,
            user_parent_uuid=user.parent_uuid,
            assistant_uuid=anchor.uuid,
            assistant_parent_uuid=anchor.parent_uuid,
            session_id=user.session_id,
            is_meta=user.is_meta,
            is_sidechain=user.is_sidechain,
            is_compact_summary=extractor.is_compact_continuation(user),
            sub_agent_threads=list(state.sub_agent_threads),
            raw_assistant_content=build_timeline(state.assistant_responses),
        )


def merge_compact_continuations(pairs: list[ConversationPair]) -> list[ConversationPair]:
    """Fold compact-continuation turns into the turn they resume.

    A continuation with no earlier turn to extend is kept as its own pair.
    """
    merged: list[ConversationPair] = []
    for pair in pairs:
        target = None
        if pair.is_compact_summary:
            target = next((p for p in reversed(merged) if not p.is_compact_summary), None)
        if target is None:
            merged.append(pair)
            continue

        target.compact_continuations.append(
            CompactContinuation(
                timestamp=pair.user_time,
                end_time=pair.assistant_time,
                duration=pair.response_time,
            )
        )
        target.assistant_time = pair.assistant_time
        target.response_time = calculate_response_time(target.user_time, pair.assistant_time)
        target.tool_uses.extend(pair.tool_uses)
        target.all_tool_uses.extend(pair.all_tool_uses)
        target.token_usage.add(pair.token_usage)
        target.thinking_blocks.extend(pair.thinking_blocks)
        target.thinking_char_count += pair.thinking_char_count
        marker = TextItem(
            f"[Compact Continuation at {pair.user_time.strftime('%Y-%m-%d %H:%M:%S')}]"
        )
        target.raw_assistant_content.append(TimelineItem(pair.user_time, marker))
        target.raw_assistant_content.extend(pair.raw_assistant_content)
        target.sub_agent_threads.extend(pair.sub_agent_threads)
    return merged
