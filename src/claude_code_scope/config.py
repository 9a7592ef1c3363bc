"""Configuration management for claude-code-scope."""

import json
from pathlib import Path
from typing import Optional

DEFAULT_CONFIG_DIR = Path.home() / ".claude-code-scope"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.json"
DEFAULT_CLAUDE_PROJECTS_DIR = Path.home() / ".claude" / "projects"

DEFAULT_WORKERS = 2
DEFAULT_MAX_RESULTS = 100
DEFAULT_STREAM_THRESHOLD_MB = 5


class Config:
    """Configuration for claude-code-scope."""

    def __init__(
        self,
        projects_dir: Optional[Path] = None,
        workers: int = DEFAULT_WORKERS,
        max_results: int = DEFAULT_MAX_RESULTS,
        cache_enabled: bool = True,
        stream_threshold_mb: float = DEFAULT_STREAM_THRESHOLD_MB,
    ):
        self.projects_dir = projects_dir or DEFAULT_CLAUDE_PROJECTS_DIR
        self.workers = workers
        self.max_results = max_results
        self.cache_enabled = cache_enabled
        self.stream_threshold_mb = stream_threshold_mb

    @property
    def stream_threshold_bytes(self) -> int:
        return int(self.stream_threshold_mb * 1024 * 1024)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load configuration from file, falling back to defaults."""
        path = config_path or DEFAULT_CONFIG_FILE

        if not path.exists():
            return cls()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls(
                projects_dir=Path(data["projects_dir"])
                if data.get("projects_dir")
                else None,
                workers=int(data.get("workers", DEFAULT_WORKERS)),
                max_results=int(data.get("max_results", DEFAULT_MAX_RESULTS)),
                cache_enabled=bool(data.get("cache_enabled", True)),
                stream_threshold_mb=float(
                    data.get("stream_threshold_mb", DEFAULT_STREAM_THRESHOLD_MB)
                ),
            )
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
            return cls()

    def save(self, config_path: Optional[Path] = None):
        """Save configuration to file."""
        path = config_path or DEFAULT_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "projects_dir": str(self.projects_dir),
            "workers": self.workers,
            "max_results": self.max_results,
            "cache_enabled": self.cache_enabled,
            "stream_threshold_mb": self.stream_threshold_mb,
        }

        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
