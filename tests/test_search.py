"""Tests for conversation search."""

from datetime import datetime, timedelta, timezone

from claude_code_scope.models import (
    ConversationPair,
    SearchOptions,
    Session,
    SessionMetrics,
    ThinkingBlock,
)
from claude_code_scope.search import CONTEXT_CHARS, QueryMatcher, SearchEngine, extract_context

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_pair(user_content="hello", assistant_content="hi", start=0, thinking=()):
    user_time = T0 + timedelta(minutes=start)
    return ConversationPair(
        user_time=user_time,
        assistant_time=user_time + timedelta(seconds=5),
        response_time=5.0,
        user_content=user_content,
        assistant_content=assistant_content,
        thinking_blocks=[ThinkingBlock(timestamp=user_time, text=t) for t in thinking],
    )


def make_session(session_id, *pairs, project="app"):
    return Session(
        session_id=session_id,
        project_name=project,
        file_path=f"/tmp/{session_id}.jsonl",
        conversation_pairs=tuple(pairs),
        metrics=SessionMetrics(),
    )


def search(sessions, query, **options):
    return SearchEngine(sessions).search(query, SearchOptions(**options))


class TestPlainSearch:
    def test_or_query_matches_assistant(self):
        session = make_session(
            "s1",
            make_pair("why is it slow?", "The request hit a timeout and timed out."),
        )
        results = search([session], "timeout OR crash")

        assert len(results) == 1
        result = results[0]
        assert result.match_type == "assistant"
        assert "timeout" in result.matched_text
        assert result.session_id == "s1"
        assert result.conversation_index == 0
        assert result.conversation is session.conversation_pairs[0]

    def test_either_term_matches(self):
        session = make_session("s1", make_pair("the app will crash on start"))
        results = search([session], "timeout or crash")
        assert results[0].matched_text == "crash"
        assert results[0].match_type == "user"

    def test_case_insensitive_by_default(self):
        session = make_session("s1", make_pair("Timeout again"))
        assert search([session], "timeout")[0].matched_text == "Timeout"

    def test_case_sensitive(self):
        session = make_session("s1", make_pair("Timeout again"))
        assert search([session], "timeout", case_sensitive=True) == []
        assert len(search([session], "Timeout", case_sensitive=True)) == 1

    def test_user_field_checked_first(self):
        session = make_session("s1", make_pair("deploy now", "deploy done"))
        assert search([session], "deploy")[0].match_type == "user"

    def test_empty_query(self):
        session = make_session("s1", make_pair())
        assert search([session], "") == []
        assert search([session], "   ") == []

    def test_no_match(self):
        assert search([make_session("s1", make_pair())], "absent") == []

    def test_regex_metacharacters_are_literal(self):
        session = make_session("s1", make_pair("call foo(bar) please"))
        assert search([session], "foo(")[0].matched_text == "foo("


class TestRegexSearch:
    def test_regex_match(self):
        session = make_session("s1", make_pair("error code 504 returned"))
        results = search([session], r"code \d+", regex=True)
        assert results[0].matched_text == "code 504"

    def test_invalid_regex_returns_empty(self):
        session = make_session("s1", make_pair("anything"))
        assert search([session], "(unclosed", regex=True) == []

    def test_regex_ignores_case_by_default(self):
        session = make_session("s1", make_pair("ERROR here"))
        assert len(search([session], "error", regex=True)) == 1
        assert search([session], "error", regex=True, case_sensitive=True) == []


class TestThinkingSearch:
    def test_thinking_blocks_searched(self):
        session = make_session("s1", make_pair("a", "b", thinking=["maybe a race condition"]))
        result = search([session], "race")[0]
        assert result.match_type == "thinking"

    def test_thinking_only(self):
        session = make_session(
            "s1", make_pair("race to finish", "b", thinking=["race condition"])
        )
        assert search([session], "race")[0].match_type == "user"
        assert search([session], "race", thinking_only=True)[0].match_type == "thinking"


class TestResultLimits:
    def test_stops_scanning_after_limit(self):
        visited = []

        def sessions():
            for i in range(5):
                visited.append(i)
                yield make_session(f"s{i}", make_pair("match me", start=i))

        results = search(sessions(), "match", max_results=2)

        assert len(results) == 2
        assert visited == [0, 1]

    def test_limit_within_one_session(self):
        session = make_session("s1", *[make_pair("match", start=i) for i in range(5)])
        assert len(search([session], "match", max_results=3)) == 3

    def test_zero_means_unlimited(self):
        session = make_session("s1", *[make_pair("match", start=i) for i in range(150)])
        assert len(search([session], "match", max_results=0)) == 150

    def test_default_limit(self):
        session = make_session("s1", *[make_pair("match", start=i) for i in range(150)])
        assert len(search([session], "match")) == 100


class TestResultShape:
    def test_newest_first(self):
        older = make_session("old", make_pair("match", start=0))
        newer = make_session("new", make_pair("match", start=60))
        results = search([older, newer], "match")
        assert [r.session_id for r in results] == ["new", "old"]

    def test_context_window(self):
        text = "x" * 100 + "needle" + "y" * 100
        session = make_session("s1", make_pair(text))
        context = search([session], "needle")[0].match_context
        assert context == "x" * CONTEXT_CHARS + "needle" + "y" * CONTEXT_CHARS

    def test_context_at_edges(self):
        assert extract_context("needle", 0, 6) == "needle"

    def test_continuation_noise_not_searched(self):
        preamble = (
            "This session is being continued from a previous conversation.\n"
            "- the needle module was discussed\n"
            "The user asked: add tests"
        )
        session = make_session("s1", make_pair(preamble))
        assert search([session], "needle") == []
        assert search([session], "add tests")[0].matched_text == "add tests"


class TestQueryMatcher:
    def test_earliest_term_wins(self):
        matcher = QueryMatcher.compile("beta OR alpha", SearchOptions())
        assert matcher.find("alpha then beta") == (0, 5)

    def test_empty_text(self):
        matcher = QueryMatcher.compile("x", SearchOptions())
        assert matcher.find("") is None

    def test_regex_skips_empty_matches(self):
        matcher = QueryMatcher.compile("x*", SearchOptions(regex=True))
        assert matcher.find("abc xx") == (4, 6)
        assert matcher.find("abc") is None

    def test_regex_empty_match_in_search(self):
        session = make_session("s1", make_pair("abc xx"))
        assert search([session], "x*", regex=True)[0].matched_text == "xx"
