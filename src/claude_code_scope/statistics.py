"""Session metrics and day/project rollups."""

import re
from typing import Iterable, Sequence

from .content import sanitize_for_display
from .models import (
    ConversationPair,
    DayAggregate,
    ProjectAggregate,
    Session,
    SessionMetrics,
    TokenUsage,
)

# Keywords mapped to the topic label they contribute to a session summary
ACTION_PATTERNS = [
    (re.compile(r"fix|修正|なおして", re.IGNORECASE), "Fix"),
    (re.compile(r"implement|実装|つくって", re.IGNORECASE), "Implement"),
    (re.compile(r"refactor|リファクタ", re.IGNORECASE), "Refactor"),
    (re.compile(r"debug|デバッグ", re.IGNORECASE), "Debug"),
    (re.compile(r"test|テスト", re.IGNORECASE), "Test"),
    (re.compile(r"analyze|分析|解析", re.IGNORECASE), "Analyze"),
    (re.compile(r"optimize|最適化", re.IGNORECASE), "Optimize"),
    (re.compile(r"update|更新|アップデート", re.IGNORECASE), "Update"),
    (re.compile(r"add|追加", re.IGNORECASE), "Add"),
    (re.compile(r"remove|削除", re.IGNORECASE), "Remove"),
    (re.compile(r"error|エラー", re.IGNORECASE), "Error"),
    (re.compile(r"bug|バグ", re.IGNORECASE), "Bug"),
]

FILE_NAME_PATTERN = re.compile(
    r"[\w-]+\.(?:js|ts|tsx|jsx|json|md|css|html|py|rs|go|java|cpp|c|h|hpp|toml)\b"
)

MIN_SUMMARY_REQUEST_LENGTH = 10
MAX_SUMMARY_PAIRS = 5
MAX_SUMMARY_TOPICS = 5


def calculate_session_metrics(pairs: Sequence[ConversationPair]) -> SessionMetrics:
    """Aggregate response time, tool and token metrics over a session's turns."""
    if not pairs:
        return SessionMetrics()

    response_times = [pair.response_time for pair in pairs]
    tokens = TokenUsage()
    for pair in pairs:
        tokens.add(pair.token_usage)

    start_time = pairs[0].user_time
    end_time = pairs[-1].assistant_time

    return SessionMetrics(
        duration=sum(response_times),
        actual_duration=max(0.0, (end_time - start_time).total_seconds()),
        avg_response_time=sum(response_times) / len(response_times),
        total_tools=sum(pair.tool_count for pair in pairs),
        thinking_char_count=sum(pair.thinking_char_count for pair in pairs),
        start_time=start_time,
        end_time=end_time,
        last_activity=end_time,
        token_usage=tokens,
    )


def _accumulate(bucket, session: Session) -> None:
    if session.session_id in bucket.session_ids:
        return
    bucket.session_ids.add(session.session_id)
    bucket.conversation_count += session.total_conversations
    bucket.total_duration += session.metrics.duration
    bucket.actual_duration += session.metrics.actual_duration
    bucket.tool_usage_count += session.metrics.total_tools
    bucket.token_usage.add(session.metrics.token_usage)


def daily_statistics(sessions: Iterable[Session]) -> list[DayAggregate]:
    """Group sessions by the local date of their first request."""
    days: dict = {}
    for session in sessions:
        if session.start_time is None:
            continue
        day = session.start_time.astimezone().date()
        bucket = days.setdefault(day, DayAggregate(date=day))
        _accumulate(bucket, session)
    return sorted(days.values(), key=lambda bucket: bucket.date)


def project_statistics(sessions: Iterable[Session]) -> list[ProjectAggregate]:
    """Group sessions by project, busiest project first."""
    projects: dict[str, ProjectAggregate] = {}
    for session in sessions:
        name = session.project_name or "Unknown"
        bucket = projects.setdefault(name, ProjectAggregate(project=name))
        _accumulate(bucket, session)
    return sorted(
        projects.values(),
        key=lambda bucket: (-bucket.conversation_count, bucket.project),
    )


def generate_session_summary(pairs: Sequence[ConversationPair]) -> tuple[str, list[str]]:
    """Build a short topic line and the first few requests of a session.

    Topics are file names and action keywords found in the first few
    substantial requests. Falls back to the first request itself.
    """
    if not pairs:
        return "No conversations", []

    meaningful = [
        pair for pair in pairs if len(pair.user_content) >= MIN_SUMMARY_REQUEST_LENGTH
    ][:MAX_SUMMARY_PAIRS]
    if not meaningful:
        first = pairs[0].user_content
        return sanitize_for_display(first, 50), [first]

    topics: list[str] = []
    details = []
    for pair in meaningful:
        message = pair.user_content
        details.append(message)
        lowered = message.lower()
        for file_name in FILE_NAME_PATTERN.findall(lowered):
            if file_name not in topics:
                topics.append(file_name)
        for pattern, label in ACTION_PATTERNS:
            if label not in topics and pattern.search(lowered):
                topics.append(label)

    if topics:
        short = " • ".join(topics[:MAX_SUMMARY_TOPICS])
    else:
        short = sanitize_for_display(meaningful[0].user_content, 60)
    return short, details[:3]
