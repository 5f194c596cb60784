"""Runtime configuration for the tmux runner."""

from __future__ import annotations

import os
import re
import shlex
import sys
from dataclasses import dataclass, field

DEFAULT_SESSION_PREFIX = "tmux-runner"
DEFAULT_READY_PATTERN = r"[$#>]\s*$"
DEFAULT_SETTLE_TICKS = 10


@dataclass(slots=True)
class ProcessorSettings:
    """Settings handed to processor factories."""

    ready_pattern: str = DEFAULT_READY_PATTERN
    stop_pattern: str = ""
    settle_ticks: int = DEFAULT_SETTLE_TICKS


@dataclass(slots=True)
class RunnerSettings:
    """Runner settings grouped by concern."""

    tmux_command: tuple[str, ...] = ("tmux",)
    session_prefix: str = DEFAULT_SESSION_PREFIX
    poll_interval_seconds: float = 0.1
    cleanup_grace_seconds: float = 1.0
    capture_lines: int = 60
    processors: tuple[str, ...] = ("dispatch",)
    interactive: bool = False
    processor: ProcessorSettings = field(default_factory=ProcessorSettings)

    @classmethod
    def from_env(cls) -> RunnerSettings:
        """Load settings from environment with defaults suitable for a local tmux."""

        return cls(
            tmux_command=tuple(shlex.split(os.getenv("TMUX_RUNNER_TMUX_COMMAND", "tmux"))),
            session_prefix=os.getenv("TMUX_RUNNER_SESSION_PREFIX", DEFAULT_SESSION_PREFIX),
            poll_interval_seconds=_env_float("TMUX_RUNNER_POLL_INTERVAL_SECONDS", 0.1),
            cleanup_grace_seconds=_env_float("TMUX_RUNNER_CLEANUP_GRACE_SECONDS", 1.0),
            capture_lines=_env_int("TMUX_RUNNER_CAPTURE_LINES", 60),
            processors=_collect_processor_names(),
            interactive=_env_bool("TMUX_RUNNER_INTERACTIVE", default=_stdin_is_tty()),
            processor=ProcessorSettings(
                ready_pattern=os.getenv("TMUX_RUNNER_READY_PATTERN", DEFAULT_READY_PATTERN),
                stop_pattern=os.getenv("TMUX_RUNNER_STOP_PATTERN", ""),
                settle_ticks=_env_int("TMUX_RUNNER_DISPATCH_SETTLE_TICKS", DEFAULT_SETTLE_TICKS),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if a setting cannot drive a run."""

        if not self.tmux_command:
            raise ValueError("TMUX_RUNNER_TMUX_COMMAND must not be empty.")
        if not self.session_prefix.strip():
            raise ValueError("TMUX_RUNNER_SESSION_PREFIX must not be empty.")
        if self.poll_interval_seconds <= 0:
            raise ValueError("TMUX_RUNNER_POLL_INTERVAL_SECONDS must be > 0.")
        if self.cleanup_grace_seconds < 0:
            raise ValueError("TMUX_RUNNER_CLEANUP_GRACE_SECONDS must be >= 0.")
        if self.capture_lines <= 0:
            raise ValueError("TMUX_RUNNER_CAPTURE_LINES must be a positive integer.")
        _validate_pattern("TMUX_RUNNER_READY_PATTERN", self.processor.ready_pattern)
        if self.processor.stop_pattern:
            _validate_pattern("TMUX_RUNNER_STOP_PATTERN", self.processor.stop_pattern)
        if self.processor.settle_ticks <= 0:
            raise ValueError("TMUX_RUNNER_DISPATCH_SETTLE_TICKS must be a positive integer.")


def _collect_processor_names() -> tuple[str, ...]:
    raw = os.getenv("TMUX_RUNNER_PROCESSORS", "dispatch")
    return _normalize_names(raw.split(","))


def _normalize_names(values: list[str] | tuple[str, ...]) -> tuple[str, ...]:
    names: list[str] = []
    for value in values:
        normalized = value.strip()
        if normalized:
            names.append(normalized)
    return tuple(names)


def _validate_pattern(name: str, pattern: str) -> None:
    try:
        re.compile(pattern)
    except re.error as error:
        raise ValueError(f"Invalid regular expression in {name}: {pattern!r} ({error})") from error


def _stdin_is_tty() -> bool:
    try:
        return sys.stdin is not None and sys.stdin.isatty()
    except (OSError, ValueError):
        # Detached or closed stdin.
        return False


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as error:
        raise ValueError(f"Invalid float value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
