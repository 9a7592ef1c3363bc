"""Free-text search over reconstructed conversations."""

import logging
import re
from typing import Iterable, Optional

from .content import clean_text
from .models import ConversationPair, SearchOptions, SearchResult, Session

logger = logging.getLogger(__name__)

CONTEXT_CHARS = 50
OR_SEPARATOR = re.compile(r" OR | or ")


class QueryMatcher:
    """A compiled query: a regex, or a disjunction of literal terms."""

    def __init__(self, terms: list[str], case_sensitive: bool = False, pattern=None):
        self.case_sensitive = case_sensitive
        self.pattern = pattern
        self.terms = terms if case_sensitive else [term.lower() for term in terms]

    @classmethod
    def compile(cls, query: str, options: SearchOptions) -> Optional["QueryMatcher"]:
        """Parse a query; returns None when nothing can match."""
        if not query or not query.strip():
            return None
        if options.regex:
            flags = 0 if options.case_sensitive else re.IGNORECASE
            try:
                pattern = re.compile(query, flags)
            except re.error as e:
                logger.debug("Invalid search pattern %r: %s", query, e)
                return None
            return cls([], options.case_sensitive, pattern)

        terms = [term.strip() for term in OR_SEPARATOR.split(query)]
        terms = [term for term in terms if term]
        if not terms:
            return None
        return cls(terms, options.case_sensitive)

    def find(self, text: str) -> Optional[tuple[int, int]]:
        """Span of the earliest non-empty match in ``text``, or None."""
        if not text:
            return None
        if self.pattern is not None:
            for match in self.pattern.finditer(text):
                if match.end() > match.start():
                    return match.span()
            return None

        haystack = text if self.case_sensitive else text.lower()
        best = None
        for term in self.terms:
            index = haystack.find(term)
            if index != -1 and (best is None or index < best[0]):
                best = (index, index + len(term))
        return best


def extract_context(text: str, start: int, end: int) -> str:
    """Text within CONTEXT_CHARS of a match."""
    return text[max(0, start - CONTEXT_CHARS) : min(len(text), end + CONTEXT_CHARS)]


def match_pair(
    pair: ConversationPair, matcher: QueryMatcher, thinking_only: bool = False
) -> Optional[tuple[str, str, str]]:
    """Return (match type, matched text, context) for the first matching field.

    Fields are tried in order: user content, assistant content, then each
    thinking block. Text is cleaned of tool-execution noise first.
    """
    fields: list[tuple[str, str]] = []
    if not thinking_only:
        fields.append(("user", pair.user_content))
        fields.append(("assistant", pair.assistant_content))
    fields.extend(("thinking", block.text) for block in pair.thinking_blocks)

    for match_type, raw_text in fields:
        if not raw_text:
            continue
        text = clean_text(raw_text)
        span = matcher.find(text)
        if span is not None:
            start, end = span
            return match_type, text[start:end], extract_context(text, start, end)
    return None


class SearchEngine:
    """Search the conversation pairs of a collection of sessions."""

    def __init__(self, sessions: Iterable[Session]):
        self.sessions = sessions

    def search(self, query: str, options: Optional[SearchOptions] = None) -> list[SearchResult]:
        """Find pairs matching ``query``, newest first.

        Scanning stops as soon as ``options.max_results`` matches are found;
        later sessions are never visited. Invalid regular expressions give
        an empty result.
        """
        options = options or SearchOptions()
        matcher = QueryMatcher.compile(query, options)
        if matcher is None:
            return []

        limit = options.max_results if options.max_results > 0 else None
        results: list[SearchResult] = []
        for session in self.sessions:
            for index, pair in enumerate(session.conversation_pairs):
                found = match_pair(pair, matcher, options.thinking_only)
                if found is None:
                    continue
                match_type, matched_text, context = found
                results.append(
                    SearchResult(
                        session_id=session.session_id,
                        project_name=session.project_name,
                        conversation_index=index,
                        match_type=match_type,
                        matched_text=matched_text,
                        match_context=context,
                        user_time=pair.user_time,
                        response_time=pair.response_time,
                        tool_count=pair.tool_count,
                        conversation=pair,
                    )
                )
                if limit is not None and len(results) >= limit:
                    break
            if limit is not None and len(results) >= limit:
                break

        results.sort(key=lambda result: result.user_time, reverse=True)
        return results
