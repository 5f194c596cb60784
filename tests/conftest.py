"""Shared test fixtures."""

from __future__ import annotations

import shlex
import sys
import threading
from pathlib import Path

import pytest

from tmux_runner.config import RunnerSettings
from tmux_runner.session import CommandOutcome, TmuxSessionController


class FakeTmux:
    """In-process tmux executor with scripted pane captures.

    ``panes`` are served one per ``capture-pane`` call; the last one repeats.
    """

    def __init__(
        self,
        *,
        sessions: tuple[str, ...] = (),
        panes: list[str] | None = None,
        fail_new_session: bool = False,
        new_session_stderr: str = "",
    ) -> None:
        self.sessions = set(sessions)
        self.panes = list(panes or [])
        self.fail_new_session = fail_new_session
        self.new_session_stderr = new_session_stderr
        self.calls: list[list[str]] = []
        self._lock = threading.Lock()

    def __call__(self, argv: list[str]) -> CommandOutcome:
        with self._lock:
            self.calls.append(list(argv))
            return self._dispatch(argv[1], argv[2:])

    def actions(self, action: str) -> list[list[str]]:
        with self._lock:
            return [call for call in self.calls if call[1] == action]

    def _dispatch(self, action: str, rest: list[str]) -> CommandOutcome:
        if action == "new-session":
            if self.fail_new_session:
                return CommandOutcome(exit_code=1, stderr=self.new_session_stderr)
            self.sessions.add(rest[rest.index("-s") + 1])
            return CommandOutcome(exit_code=0)

        name = rest[rest.index("-t") + 1]
        if name not in self.sessions:
            return CommandOutcome(exit_code=1, stderr=f"can't find session: {name}")
        if action == "capture-pane":
            if not self.panes:
                return CommandOutcome(exit_code=0)
            pane = self.panes.pop(0) if len(self.panes) > 1 else self.panes[0]
            return CommandOutcome(exit_code=0, stdout=pane)
        if action == "kill-session":
            self.sessions.discard(name)
        return CommandOutcome(exit_code=0)


class Console:
    """Thread-safe collector standing in for ``click.echo``."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, message: str) -> None:
        with self._lock:
            self.lines.append(message)

    def count(self, message: str) -> int:
        with self._lock:
            return self.lines.count(message)


@pytest.fixture()
def fake_tmux() -> FakeTmux:
    return FakeTmux()


@pytest.fixture()
def console() -> Console:
    return Console()


@pytest.fixture()
def fast_settings() -> RunnerSettings:
    return RunnerSettings(
        poll_interval_seconds=0.01,
        cleanup_grace_seconds=0.0,
        interactive=False,
    )


def make_controller(executor: FakeTmux) -> TmuxSessionController:
    return TmuxSessionController(executor=executor)


def fake_tmux_command(state_path: Path, *extra: str) -> str:
    """Shell-quoted command prefix running the bundled tmux stand-in."""

    argv = [sys.executable, "-m", "tmux_runner.fake_tmux", "--state", str(state_path), *extra]
    return shlex.join(argv)
