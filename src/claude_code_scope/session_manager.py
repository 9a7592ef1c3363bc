"""Turn session files into Sessions and answer queries across them."""

import hashlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePath
from typing import Iterable, Optional, Sequence

from .discovery import decode_project_path, extract_full_session_id, get_project_name_from_dir
from .ingest import STREAM_THRESHOLD_BYTES, decode_file
from .models import (
    DayAggregate,
    Entry,
    ProjectAggregate,
    SearchOptions,
    SearchResult,
    Session,
)
from .reconstructor import ConversationReconstructor
from .search import SearchEngine
from .statistics import (
    calculate_session_metrics,
    daily_statistics,
    generate_session_summary,
    project_statistics,
)
from .tree import ConversationTree, build_tree

logger = logging.getLogger(__name__)

UNKNOWN_PROJECT = "unknown-project"


def extract_session_id(entries: Sequence[Entry], file_path: str) -> str:
    """Session id from the entries, else the file name, else a path hash."""
    for entry in entries:
        if entry.session_id:
            return entry.session_id
    full_id = extract_full_session_id(Path(file_path))
    if full_id:
        return full_id
    return hashlib.sha1(str(file_path).encode("utf-8")).hexdigest()[:8]


def extract_project_name(entries: Sequence[Entry], file_path: str) -> str:
    for entry in entries:
        if entry.project_name:
            return entry.project_name
        if entry.cwd:
            parts = [p for p in PurePath(entry.cwd).parts if p not in ("/", "\\")]
            if parts:
                return parts[-1]

    parent = Path(file_path).parent.name
    if parent and parent != "projects":
        return get_project_name_from_dir(parent)
    return UNKNOWN_PROJECT


def extract_project_path(file_path: str, first_entry: Optional[Entry]) -> Optional[str]:
    if first_entry is not None and first_entry.cwd:
        return first_entry.cwd
    return decode_project_path(Path(file_path).parent.name)


def reconstruct_session(
    file_path,
    raw_entries: Sequence[Entry],
    cached_first_entry: Optional[Entry] = None,
    reconstructor: Optional[ConversationReconstructor] = None,
) -> Optional[Session]:
    """Build a Session from decoded entries; None when no turn survives."""
    if not raw_entries:
        return None

    reconstructor = reconstructor or ConversationReconstructor()
    pairs = reconstructor.reconstruct(raw_entries)
    if not pairs:
        return None

    file_path = str(file_path)
    first_entry = cached_first_entry or raw_entries[0]
    session_id = extract_session_id(raw_entries, file_path)
    summary, details = generate_session_summary(pairs)

    return Session(
        session_id=session_id,
        full_session_id=extract_full_session_id(Path(file_path)) or session_id,
        project_name=extract_project_name(raw_entries, file_path),
        project_path=extract_project_path(file_path, first_entry),
        file_path=file_path,
        conversation_pairs=tuple(pairs),
        metrics=calculate_session_metrics(pairs),
        summary=summary,
        summary_details=details,
    )


class SessionCache:
    """In-memory Sessions keyed by file path and modification time.

    A changed modification time is always a miss; the stale entry is dropped.
    """

    def __init__(self):
        self._entries: dict[str, tuple[int, Session]] = {}
        self._lock = threading.Lock()

    def get(self, file_path) -> Optional[Session]:
        key = str(file_path)
        try:
            mtime = Path(file_path).stat().st_mtime_ns
        except OSError:
            mtime = None
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                return None
            if cached[0] != mtime:
                del self._entries[key]
                logger.debug("Cache invalidated for %s", key)
                return None
            return cached[1]

    def put(self, file_path, session: Session, mtime_ns: Optional[int] = None) -> None:
        if mtime_ns is None:
            try:
                mtime_ns = Path(file_path).stat().st_mtime_ns
            except OSError:
                return
        with self._lock:
            self._entries[str(file_path)] = (mtime_ns, session)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def load_session(
    file_path,
    cache: Optional[SessionCache] = None,
    stream_threshold: int = STREAM_THRESHOLD_BYTES,
    reconstructor: Optional[ConversationReconstructor] = None,
) -> Optional[Session]:
    """Decode and reconstruct one file. Never raises for a bad file."""
    if cache is not None:
        cached = cache.get(file_path)
        if cached is not None:
            logger.debug("Cache hit for %s", file_path)
            return cached

    try:
        mtime_ns = Path(file_path).stat().st_mtime_ns
        entries, first_entry = decode_file(Path(file_path), stream_threshold)
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("Skipping unreadable session file %s: %s", file_path, e)
        return None

    session = reconstruct_session(file_path, entries, first_entry, reconstructor)
    if session is None:
        logger.debug("No conversations in %s", file_path)
    elif cache is not None:
        cache.put(file_path, session, mtime_ns)
    return session


def load_sessions(
    file_paths: Iterable,
    workers: int = 2,
    cache: Optional[SessionCache] = None,
    stream_threshold: int = STREAM_THRESHOLD_BYTES,
    reconstructor: Optional[ConversationReconstructor] = None,
) -> list[Session]:
    """Reconstruct many files on a small worker pool.

    Workers share nothing but the executor's queue of paths. Sessions come
    back in input order; files that fail or hold no turns are left out.
    """
    paths = list(file_paths)
    if not paths:
        return []

    def work(path) -> Optional[Session]:
        return load_session(path, cache, stream_threshold, reconstructor)

    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        results = list(executor.map(work, paths))

    sessions = [session for session in results if session is not None]
    logger.info("Loaded %d sessions from %d files", len(sessions), len(paths))
    return sessions


class SessionManager:
    """Read-only queries over a set of reconstructed sessions."""

    def __init__(self, sessions: Sequence[Session]):
        self.sessions = list(sessions)
        self._trees: dict[str, ConversationTree] = {}

    @classmethod
    def from_files(
        cls,
        file_paths: Iterable,
        workers: int = 2,
        cache: Optional[SessionCache] = None,
        stream_threshold: int = STREAM_THRESHOLD_BYTES,
    ) -> "SessionManager":
        return cls(load_sessions(file_paths, workers, cache, stream_threshold))

    def projects(self) -> list[str]:
        return sorted({s.project_name for s in self.sessions})

    def filter_sessions(
        self, project: Optional[str] = None, min_duration: Optional[float] = None
    ) -> list[Session]:
        """Sessions for one project and/or with at least ``min_duration`` seconds of responses."""
        sessions = self.sessions
        if project:
            sessions = [s for s in sessions if s.project_name == project]
        if min_duration is not None:
            sessions = [s for s in sessions if s.metrics.duration >= min_duration]
        return list(sessions)

    def search_sessions(self, query: str) -> list[Session]:
        """Sessions whose project, id or any turn text contains ``query`` (case-insensitive).

        A blank query matches every session.
        """
        needle = query.strip().lower()
        if not needle:
            return list(self.sessions)

        def matches(session: Session) -> bool:
            if needle in session.project_name.lower() or needle in session.session_id.lower():
                return True
            return any(
                needle in pair.user_content.lower() or needle in pair.assistant_content.lower()
                for pair in session.conversation_pairs
            )

        return [s for s in self.sessions if matches(s)]

    def search(self, query: str, options: Optional[SearchOptions] = None) -> list[SearchResult]:
        return SearchEngine(self.sessions).search(query, options)

    def daily_statistics(self) -> list[DayAggregate]:
        return daily_statistics(self.sessions)

    def project_statistics(self) -> list[ProjectAggregate]:
        return project_statistics(self.sessions)

    def get_session(self, session_id: str) -> Optional[Session]:
        """Find a session by exact id or unique id prefix."""
        for session in self.sessions:
            if session.session_id == session_id:
                return session
        matches = [s for s in self.sessions if s.session_id.startswith(session_id)]
        return matches[0] if len(matches) == 1 else None

    def conversation_tree(self, session_id: str) -> Optional[ConversationTree]:
        session = self.get_session(session_id)
        if session is None:
            return None
        if session.session_id not in self._trees:
            self._trees[session.session_id] = build_tree(session.conversation_pairs)
        return self._trees[session.session_id]

    def statistics(self) -> dict:
        """Totals across all sessions."""
        return {
            "total_sessions": len(self.sessions),
            "total_conversations": sum(s.total_conversations for s in self.sessions),
            "total_duration": sum(s.metrics.duration for s in self.sessions),
            "total_tools": sum(s.total_tools for s in self.sessions),
            "total_tokens": sum(s.total_tokens for s in self.sessions),
        }
