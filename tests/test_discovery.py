"""Tests for session file discovery."""

import os
import tempfile
from pathlib import Path

import pytest

from claude_code_scope.discovery import (
    decode_project_path,
    discover_sessions,
    extract_full_session_id,
    get_project_name_from_dir,
    is_tmp_directory,
)


@pytest.fixture
def projects_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def touch(path: Path, mtime: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("{}\n", encoding="utf-8")
    os.utime(path, (mtime, mtime))
    return path


class TestGetProjectNameFromDir:
    def test_extracts_last_component(self):
        assert get_project_name_from_dir("-Users-john-Development-myproject") == "myproject"

    def test_keeps_multi_part_names(self):
        assert get_project_name_from_dir("-Users-john-Projects-cool-app") == "cool-app"

    def test_handles_simple_name(self):
        assert get_project_name_from_dir("myproject") == "myproject"

    def test_strips_prefixes(self):
        assert get_project_name_from_dir("-home-user-projects-myapp") == "myapp"
        assert get_project_name_from_dir("-mnt-c-Users-name-code-webapp") == "webapp"

    def test_skips_intermediate_dirs(self):
        assert get_project_name_from_dir("-Users-john-workspace-scope") == "scope"
        assert get_project_name_from_dir("-Users-john-src-backend") == "backend"

    def test_leading_dir_dropped_before_container(self):
        assert get_project_name_from_dir("-opt-code-app") == "app"

    def test_only_container_dirs(self):
        assert get_project_name_from_dir("-Users-john-projects") == "projects"


class TestPathHelpers:
    def test_is_tmp_directory(self):
        assert is_tmp_directory("-tmp-abc")
        assert is_tmp_directory("-private-var-folders-xy")
        assert is_tmp_directory("-Users-me-pytest-of-me-pytest-3")
        assert not is_tmp_directory("-Users-me-code-app")

    def test_decode_project_path(self):
        assert decode_project_path("-Users-name-workspace-app") == "/Users/name/workspace/app"
        assert decode_project_path("plain") is None

    def test_extract_full_session_id(self):
        uuid = "0b5c1d2e-3f40-4a5b-8c6d-7e8f90a1b2c3"
        assert extract_full_session_id(Path(f"/x/{uuid}.jsonl")) == uuid
        assert extract_full_session_id(Path(f"/x/agent-{uuid}.jsonl")) == uuid
        assert extract_full_session_id(Path("/x/" + "ab" * 16 + ".jsonl")) == "ab" * 16
        assert extract_full_session_id(Path("/x/notes.jsonl")) is None


class TestDiscoverSessions:
    def test_finds_jsonl_files_oldest_first(self, projects_dir):
        newer = touch(projects_dir / "-home-me-code-app" / "b.jsonl", 2_000_000)
        older = touch(projects_dir / "-home-me-code-lib" / "a.jsonl", 1_000_000)
        touch(projects_dir / "-home-me-code-app" / "notes.txt", 1_500_000)

        found = list(discover_sessions(projects_dir))

        assert found == [(older, "lib"), (newer, "app")]

    def test_skips_tmp_directories(self, projects_dir):
        touch(projects_dir / "-tmp-scratch" / "a.jsonl", 1_000_000)
        assert list(discover_sessions(projects_dir)) == []
        assert len(list(discover_sessions(projects_dir, include_tmp=True))) == 1

    def test_missing_directory(self, projects_dir):
        assert list(discover_sessions(projects_dir / "nope")) == []

    def test_skips_files_that_cannot_be_stat(self, projects_dir):
        kept = touch(projects_dir / "-home-me-code-app" / "a.jsonl", 1_000_000)
        # A dangling link is listed by glob but stat() raises
        os.symlink(projects_dir / "gone.jsonl", projects_dir / "-home-me-code-app" / "b.jsonl")

        assert list(discover_sessions(projects_dir)) == [(kept, "app")]
