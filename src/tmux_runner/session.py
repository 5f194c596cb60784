"""Subprocess wrapper around the tmux command-line interface."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_CAPTURE_LINES = 60


class SessionCreationError(RuntimeError):
    """The tmux session could not be found or created."""

    def __init__(self, message: str, *, session_name: str) -> None:
        super().__init__(message)
        self.session_name = session_name


@dataclass(slots=True)
class CommandOutcome:
    """Exit status and captured streams of one tmux invocation."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


CommandExecutor = Callable[[list[str]], CommandOutcome]


def run_command(argv: list[str]) -> CommandOutcome:
    """Run *argv* to completion and capture its text output."""

    completed = subprocess.run(  # noqa: S603
        argv,
        capture_output=True,
        text=True,
        check=False,
    )
    return CommandOutcome(
        exit_code=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )


class TmuxSessionController:
    """Create, inspect, feed and destroy tmux sessions by name.

    Every call blocks until the tmux client exits. Nothing is retried and no
    timeout is applied: a hung tmux server hangs the caller.
    """

    def __init__(
        self,
        *,
        tmux_command: tuple[str, ...] = ("tmux",),
        capture_lines: int = DEFAULT_CAPTURE_LINES,
        executor: CommandExecutor | None = None,
    ) -> None:
        if not tmux_command:
            raise ValueError("tmux command must not be empty.")
        self.tmux_command = tuple(tmux_command)
        self.capture_lines = capture_lines
        self._executor = executor or run_command
        self.last_error: str | None = None

    def has_session(self, name: str) -> bool:
        try:
            return self._run("has-session", "-t", name).exit_code == 0
        except OSError:
            return False

    def ensure_session(self, name: str, command: str) -> bool:
        """Reuse session *name* or start it detached running *command*."""

        self.last_error = None
        if self.has_session(name):
            logger.info("Reusing existing tmux session %s", name)
            return True

        logger.info("Starting new tmux session %s", name)
        try:
            outcome = self._run("new-session", "-d", "-s", name, command)
        except OSError as error:
            self.last_error = f"tmux command not available: {error}"
            logger.error("Error creating tmux session %s: %s", name, self.last_error)
            return False

        if outcome.exit_code != 0:
            self.last_error = (
                f"Exit code: {outcome.exit_code}. Error output: {outcome.stderr.strip()}"
            )
            logger.error("Error creating tmux session %s. %s", name, self.last_error)
            return False
        return True

    def capture_pane(self, name: str, line_count: int | None = None) -> str:
        """Return the last *line_count* lines of the pane, or ``""`` on failure."""

        lines = self.capture_lines if line_count is None else line_count
        try:
            outcome = self._run("capture-pane", "-pS", f"-{lines}", "-t", name)
        except OSError as error:
            logger.warning("capture-pane failed for %s: %s", name, error)
            return ""
        if outcome.exit_code != 0:
            logger.debug("capture-pane exited %d for %s", outcome.exit_code, name)
        return outcome.stdout

    def send_keys(self, name: str, *tokens: str) -> int:
        return self._run("send-keys", "-t", name, *tokens).exit_code

    def send_task(self, name: str, command: str) -> int:
        return self.send_keys(name, command, "Enter")

    def send_interrupt(self, name: str) -> int:
        return self.send_keys(name, "C-c")

    def terminate(self, name: str) -> int:
        try:
            exit_code = self._run("kill-session", "-t", name).exit_code
        except OSError as error:
            logger.warning("kill-session failed for %s: %s", name, error)
            return -1
        if exit_code != 0:
            logger.debug("kill-session exited %d for %s", exit_code, name)
        return exit_code

    def _run(self, *args: str) -> CommandOutcome:
        return self._executor([*self.tmux_command, *args])
