"""Locate Claude Code session files and derive project names from their paths."""

import re
from pathlib import Path
from typing import Iterator, Optional

TRANSCRIPT_EXTENSION = ".jsonl"

UUID_PATTERN = re.compile(
    r"([a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12})", re.IGNORECASE
)
LONG_HEX_PATTERN = re.compile(r"([a-f0-9]{32,})", re.IGNORECASE)

SKIPPED_DIRECTORIES = {"node_modules", ".git", "venv", "__pycache__"}

HOME_PREFIXES = ("-home-", "-mnt-c-Users-", "-Users-")

# Intermediate directories that never name a project
CONTAINER_DIRS = frozenset({
    "projects",
    "code",
    "repos",
    "src",
    "dev",
    "work",
    "workspace",
    "documents",
    "development",
    "github",
    "git",
})


def is_tmp_directory(dir_name: str) -> bool:
    """Check if a project directory name encodes a temp/pytest directory."""
    name_lower = dir_name.lower()

    tmp_prefixes = [
        "-tmp-",
        "-var-folders-",
        "-private-var-folders-",
        "-private-tmp-",
    ]
    if any(name_lower.startswith(prefix) for prefix in tmp_prefixes):
        return True

    return "pytest-" in name_lower


def get_project_name_from_dir(dir_name: str) -> str:
    """Readable project name from a mangled Claude projects directory name.

    -home-user-projects-myproject -> myproject
    -Users-name-Development-cool-app -> cool-app
    """
    name = dir_name
    for prefix in HOME_PREFIXES:
        if name.lower().startswith(prefix.lower()):
            name = name[len(prefix) :]
            break

    parts = [part for part in name.split("-") if part]
    if not parts:
        return dir_name

    # A user name comes before the first container directory
    if any(part.lower() in CONTAINER_DIRS for part in parts[1:]):
        parts = parts[1:]

    kept = [part for part in parts if part.lower() not in CONTAINER_DIRS]
    return "-".join(kept) if kept else parts[-1]


def decode_project_path(dir_name: str) -> Optional[str]:
    """Rebuild a filesystem path from a mangled directory name.

    -Users-name-workspace-app -> /Users/name/workspace/app
    """
    if not dir_name.startswith("-"):
        return None
    return "/" + dir_name.lstrip("-").replace("-", "/")


def extract_full_session_id(file_path: Path) -> Optional[str]:
    """Pull a UUID (or long hex id) out of a session file name."""
    name = Path(file_path).name
    match = UUID_PATTERN.search(name) or LONG_HEX_PATTERN.search(name)
    return match.group(1) if match else None


def discover_sessions(
    projects_dir: Path, include_tmp: bool = False
) -> Iterator[tuple[Path, str]]:
    """Discover all session files in the projects directory.

    Yields tuples of (file_path, project_name), oldest modification first.
    """
    projects_dir = Path(projects_dir).expanduser()
    if not projects_dir.exists():
        return

    found = []
    for project_dir in sorted(projects_dir.iterdir()):
        if not project_dir.is_dir() or project_dir.name in SKIPPED_DIRECTORIES:
            continue
        if not include_tmp and is_tmp_directory(project_dir.name):
            continue

        project_name = get_project_name_from_dir(project_dir.name)
        for jsonl_file in project_dir.glob(f"*{TRANSCRIPT_EXTENSION}"):
            try:
                mtime = jsonl_file.stat().st_mtime
            except OSError:
                # Removed or rotated since the directory was listed
                continue
            found.append((mtime, str(jsonl_file), jsonl_file, project_name))

    found.sort(key=lambda item: item[:2])
    for _mtime, _name, jsonl_file, project_name in found:
        yield jsonl_file, project_name
