"""ODM environment variable configuration.

Environment variables:
    ODM_EXECUTABLE: REPL executable to launch
        - default "octave-cli"

    ODM_ARGS: Extra command line arguments, split like a shell would
        - default "--quiet --no-line-editing"

    ODM_SOURCE_FOLDER: Folder registered on the REPL search path at startup
        - default: current working directory

    ODM_PROMPT: Prompt prefix stripped from REPL output
        - default "debug> "

    ODM_LOG: Mirror all REPL diagnostics to stderr
        - true/1/yes = on
        - false/0/no = off (default)

    ODM_LOG_DEBUG: Debug logging
        - true/1/yes = on (log to a temp file)
        - false/0/no = off (default, log to stderr)

    ODM_TIMEOUT: Seconds a tool call may wait for the REPL before the
        session is terminated
        - default 30, clamped to 0.1-3600
"""

from __future__ import annotations

import os
import shlex
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .runtime.dialect import DEFAULT_PROMPT

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_EXECUTABLE = "octave-cli"
DEFAULT_ARGS = "--quiet --no-line-editing"
DEFAULT_TIMEOUT = 30.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_args(value: str | None) -> list[str]:
    if value is None:
        value = DEFAULT_ARGS
    return shlex.split(value)


def _parse_timeout(value: str | None) -> float:
    if not value:
        return DEFAULT_TIMEOUT
    try:
        timeout = float(value)
        return max(0.1, min(timeout, 3600.0))
    except ValueError:
        return DEFAULT_TIMEOUT


@dataclass
class Config:
    """ODM configuration.

    Attributes:
        executable: REPL executable
        args: Extra REPL arguments
        source_folder: Folder added to the search path at startup
        prompt: Prompt prefix stripped from output
        log: Mirror diagnostics to stderr
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug=True)
        timeout: Per-call timeout in seconds for tool requests
    """

    executable: str = DEFAULT_EXECUTABLE
    args: list[str] = field(default_factory=lambda: shlex.split(DEFAULT_ARGS))
    source_folder: str = field(default_factory=os.getcwd)
    prompt: str = DEFAULT_PROMPT
    log: bool = False
    log_debug: bool = False
    log_file: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    def __repr__(self) -> str:
        return (
            f"Config(executable={self.executable}, "
            f"args={' '.join(self.args)}, "
            f"source_folder={self.source_folder}, "
            f"prompt={self.prompt!r}, "
            f"log={self.log}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"timeout={self.timeout})"
        )


def _generate_log_file_path() -> str:
    """Return a timestamped log file path in the system temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "octave-debug-mcp"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"odm_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("ODM_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        executable=os.environ.get("ODM_EXECUTABLE") or DEFAULT_EXECUTABLE,
        args=_parse_args(os.environ.get("ODM_ARGS")),
        source_folder=os.environ.get("ODM_SOURCE_FOLDER") or os.getcwd(),
        prompt=os.environ.get("ODM_PROMPT", DEFAULT_PROMPT),
        log=_parse_bool(os.environ.get("ODM_LOG"), default=False),
        log_debug=log_debug,
        log_file=log_file,
        timeout=_parse_timeout(os.environ.get("ODM_TIMEOUT")),
    )


# Global config instance (lazily loaded)
_config: Config | None = None


def get_config() -> Config:
    """Return the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration (used by tests)."""
    global _config
    _config = load_config()
    return _config
