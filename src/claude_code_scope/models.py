"""Data models for reconstructed Claude Code conversations."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

TASK_TOOL_NAME = "Task"

# Response times above this are treated as the user stepping away
MAX_RESPONSE_TIME_SECONDS = 3600


class EntryType(str, Enum):
    """Kind of a decoded log line."""

    USER = "user"
    ASSISTANT = "assistant"
    OTHER = "other"

    @classmethod
    def from_raw(cls, value: str) -> "EntryType":
        if value == "user":
            return cls.USER
        if value == "assistant":
            return cls.ASSISTANT
        return cls.OTHER


@dataclass(frozen=True)
class TextItem:
    text: str


@dataclass(frozen=True)
class ThinkingItem:
    thinking: str


@dataclass(frozen=True)
class ToolUseItem:
    name: str
    id: Optional[str]
    input: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResultItem:
    tool_use_id: str
    content: str
    is_error: bool = False


@dataclass(frozen=True)
class OtherItem:
    """Content item of a type this package does not interpret (images etc.)."""

    type: str
    data: dict = field(default_factory=dict)


ContentItem = Union[TextItem, ThinkingItem, ToolUseItem, ToolResultItem, OtherItem]


@dataclass
class TokenUsage:
    """Token accounting for one entry or an aggregate of entries."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "TokenUsage") -> None:
        """Accumulate another usage record into this one."""
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens

    def copy(self) -> "TokenUsage":
        return TokenUsage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            cache_creation_input_tokens=self.cache_creation_input_tokens,
            cache_read_input_tokens=self.cache_read_input_tokens,
        )


@dataclass
class Entry:
    """One decoded line of a session log. Discarded after reconstruction."""

    type: EntryType
    timestamp: datetime
    content: Union[str, list[ContentItem]] = ""
    has_message: bool = False  # False when message.content was missing or empty
    usage: Optional[TokenUsage] = None
    uuid: Optional[str] = None
    parent_uuid: Optional[str] = None
    session_id: Optional[str] = None
    is_meta: bool = False
    is_sidechain: bool = False
    is_compact_summary: bool = False
    cwd: Optional[str] = None
    project_name: Optional[str] = None

    @property
    def items(self) -> list[ContentItem]:
        """Content as a list of items (string content becomes one text item)."""
        if isinstance(self.content, str):
            return [TextItem(self.content)] if self.content else []
        return self.content


@dataclass
class ToolResult:
    """Outcome of a tool invocation, matched to it by id."""

    tool_id: str
    result_text: str
    is_error: bool = False


@dataclass
class ToolInvocation:
    """A tool call made by the assistant, joined with its result when known."""

    tool_name: str
    tool_id: str
    input: dict
    timestamp: datetime
    result: Optional[str] = None
    is_error: bool = False

    @property
    def is_task(self) -> bool:
        """True when the call spawned a sub-agent rather than a primitive tool."""
        return self.tool_name == TASK_TOOL_NAME


@dataclass
class ThinkingBlock:
    timestamp: datetime
    text: str


@dataclass
class SubAgentThread:
    """A command delegated to a sub-agent and the assistant entries answering it."""

    command_text: str
    command_time: datetime
    command_uuid: Optional[str] = None
    responses: list[str] = field(default_factory=list)
    response_times: list[datetime] = field(default_factory=list)
    is_complete: bool = False

    @property
    def is_answered(self) -> bool:
        return bool(self.responses)


@dataclass
class TimelineItem:
    """A raw assistant content item stamped with the time of its entry."""

    timestamp: datetime
    item: ContentItem


@dataclass
class CompactContinuation:
    """Record of a compact-continuation turn folded into an earlier turn."""

    timestamp: datetime
    end_time: datetime
    duration: float


@dataclass
class ConversationPair:
    """One reconstructed user request and the assistant's answer to it."""

    user_time: datetime
    assistant_time: datetime
    response_time: float  # seconds, clamped to [0, MAX_RESPONSE_TIME_SECONDS]
    user_content: str
    assistant_content: str
    tool_uses: list[ToolInvocation] = field(default_factory=list)  # Task calls excluded
    all_tool_uses: list[ToolInvocation] = field(default_factory=list)
    thinking_blocks: list[ThinkingBlock] = field(default_factory=list)
    thinking_char_count: int = 0
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    user_uuid: Optional[str] = None
    user_parent_uuid: Optional[str] = None
    assistant_uuid: Optional[str] = None
    assistant_parent_uuid: Optional[str] = None
    session_id: Optional[str] = None
    is_meta: bool = False
    is_sidechain: bool = False
    is_compact_summary: bool = False
    sub_agent_threads: list[SubAgentThread] = field(default_factory=list)
    raw_assistant_content: list[TimelineItem] = field(default_factory=list)
    compact_continuations: list[CompactContinuation] = field(default_factory=list)

    @property
    def tool_count(self) -> int:
        return len(self.tool_uses)


@dataclass
class SessionMetrics:
    """Aggregates derived once from a session's conversation pairs."""

    duration: float = 0.0  # sum of response times, seconds
    actual_duration: float = 0.0  # wall clock first request -> last answer, seconds
    avg_response_time: float = 0.0
    total_tools: int = 0
    thinking_char_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    last_activity: Optional[datetime] = None
    token_usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class Session:
    """A reconstructed session log file."""

    session_id: str
    project_name: str
    file_path: str
    conversation_pairs: tuple[ConversationPair, ...]
    metrics: SessionMetrics
    full_session_id: Optional[str] = None
    project_path: Optional[str] = None
    summary: str = ""
    summary_details: list[str] = field(default_factory=list)

    @property
    def total_conversations(self) -> int:
        return len(self.conversation_pairs)

    @property
    def total_tools(self) -> int:
        return self.metrics.total_tools

    @property
    def total_tokens(self) -> int:
        return self.metrics.token_usage.total_tokens

    @property
    def start_time(self) -> Optional[datetime]:
        return self.metrics.start_time

    @property
    def end_time(self) -> Optional[datetime]:
        return self.metrics.end_time

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.metrics.last_activity


@dataclass
class SearchOptions:
    regex: bool = False
    case_sensitive: bool = False
    max_results: int = 100  # <= 0 means unlimited
    thinking_only: bool = False


@dataclass
class SearchResult:
    """A conversation pair matching a query, with enough context to find it again."""

    session_id: str
    project_name: str
    conversation_index: int
    match_type: str  # user, assistant or thinking
    matched_text: str
    match_context: str
    user_time: datetime
    response_time: float
    tool_count: int
    conversation: Optional[ConversationPair] = field(
        default=None, repr=False, compare=False
    )


@dataclass
class DayAggregate:
    """Sessions rolled up by the local calendar date of their first request."""

    date: date
    session_ids: set[str] = field(default_factory=set)
    conversation_count: int = 0
    total_duration: float = 0.0
    actual_duration: float = 0.0
    tool_usage_count: int = 0
    token_usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def session_count(self) -> int:
        return len(self.session_ids)


@dataclass
class ProjectAggregate:
    """Sessions rolled up by project name."""

    project: str
    session_ids: set[str] = field(default_factory=set)
    conversation_count: int = 0
    total_duration: float = 0.0
    actual_duration: float = 0.0
    tool_usage_count: int = 0
    token_usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def session_count(self) -> int:
        return len(self.session_ids)
