"""Tests for session metrics, rollups and summaries."""

from datetime import datetime, timedelta, timezone

from claude_code_scope.models import (
    ConversationPair,
    Session,
    TokenUsage,
    ToolInvocation,
)
from claude_code_scope.statistics import (
    calculate_session_metrics,
    daily_statistics,
    generate_session_summary,
    project_statistics,
)

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_pair(start, response_time, user_content="please fix the bug", tools=(), tokens=None):
    tool_uses = [
        ToolInvocation(tool_name=name, tool_id=f"t{i}", input={}, timestamp=start)
        for i, name in enumerate(tools)
    ]
    return ConversationPair(
        user_time=start,
        assistant_time=start + timedelta(seconds=response_time),
        response_time=float(response_time),
        user_content=user_content,
        assistant_content="ok",
        tool_uses=[t for t in tool_uses if not t.is_task],
        all_tool_uses=tool_uses,
        token_usage=tokens or TokenUsage(),
    )


def make_session(session_id, project, pairs):
    return Session(
        session_id=session_id,
        project_name=project,
        file_path=f"/tmp/{session_id}.jsonl",
        conversation_pairs=tuple(pairs),
        metrics=calculate_session_metrics(pairs),
    )


class TestSessionMetrics:
    def test_empty(self):
        metrics = calculate_session_metrics([])
        assert metrics.duration == 0.0
        assert metrics.start_time is None

    def test_sums_and_spans(self):
        pairs = [
            make_pair(T0, 10, tools=["Read", "Task"], tokens=TokenUsage(input_tokens=5)),
            make_pair(T0 + timedelta(minutes=30), 20, tools=["Bash"],
                      tokens=TokenUsage(output_tokens=7, cache_creation_input_tokens=2)),
        ]
        metrics = calculate_session_metrics(pairs)

        assert metrics.duration == 30.0
        assert metrics.avg_response_time == 15.0
        # Wall clock includes the idle half hour between turns
        assert metrics.actual_duration == 30 * 60 + 20
        assert metrics.total_tools == 2
        assert metrics.start_time == T0
        assert metrics.end_time == T0 + timedelta(minutes=30, seconds=20)
        assert metrics.token_usage == TokenUsage(
            input_tokens=5, output_tokens=7, cache_creation_input_tokens=2
        )


class TestDailyStatistics:
    def test_groups_by_local_date_of_first_turn(self):
        day_two = T0 + timedelta(days=3)
        sessions = [
            make_session("s1", "app", [make_pair(T0, 10), make_pair(T0 + timedelta(seconds=30), 5)]),
            make_session("s2", "app", [make_pair(T0 + timedelta(minutes=1), 1, tools=["Read"])]),
            make_session("s3", "lib", [make_pair(day_two, 4)]),
        ]
        days = daily_statistics(sessions)

        assert [d.date for d in days] == [
            T0.astimezone().date(),
            day_two.astimezone().date(),
        ]
        first = days[0]
        assert first.session_count == 2
        assert first.conversation_count == 3
        assert first.total_duration == 16.0
        assert first.tool_usage_count == 1

    def test_duplicate_sessions_counted_once(self):
        session = make_session("s1", "app", [make_pair(T0, 10)])
        days = daily_statistics([session, session])
        assert days[0].session_count == 1
        assert days[0].conversation_count == 1

    def test_no_sessions(self):
        assert daily_statistics([]) == []


class TestProjectStatistics:
    def test_busiest_project_first(self):
        sessions = [
            make_session("s1", "small", [make_pair(T0, 1)]),
            make_session("s2", "big", [make_pair(T0, 1), make_pair(T0, 1)]),
            make_session("s3", "big", [make_pair(T0, 1)]),
        ]
        projects = project_statistics(sessions)
        assert [p.project for p in projects] == ["big", "small"]
        assert projects[0].session_count == 2
        assert projects[0].conversation_count == 3

    def test_ties_sorted_by_name(self):
        sessions = [
            make_session("s1", "zeta", [make_pair(T0, 1)]),
            make_session("s2", "alpha", [make_pair(T0, 1)]),
        ]
        assert [p.project for p in project_statistics(sessions)] == ["alpha", "zeta"]

    def test_tokens_summed(self):
        sessions = [
            make_session("s1", "app", [make_pair(T0, 1, tokens=TokenUsage(input_tokens=3))]),
            make_session("s2", "app", [make_pair(T0, 1, tokens=TokenUsage(input_tokens=4))]),
        ]
        assert project_statistics(sessions)[0].token_usage.input_tokens == 7


class TestSessionSummary:
    def test_no_pairs(self):
        assert generate_session_summary([]) == ("No conversations", [])

    def test_topics_from_files_and_actions(self):
        pairs = [make_pair(T0, 1, user_content="Fix the crash in parser.py and add tests")]
        short, details = generate_session_summary(pairs)
        assert short.startswith("parser.py")
        assert "Fix" in short
        assert "Test" in short
        assert details == ["Fix the crash in parser.py and add tests"]

    def test_short_requests_fall_back_to_first(self):
        pairs = [make_pair(T0, 1, user_content="hi")]
        assert generate_session_summary(pairs) == ("hi", ["hi"])

    def test_no_topics_uses_request_text(self):
        pairs = [make_pair(T0, 1, user_content="Tell me about the weather here")]
        short, _ = generate_session_summary(pairs)
        assert short == "Tell me about the weather here"
