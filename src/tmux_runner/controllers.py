"""Controllers for tmux-runner CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

import click

from tmux_runner.config import RunnerSettings
from tmux_runner.monitor import HaltReason
from tmux_runner.pipeline import Emit, TaskQueue
from tmux_runner.processors import available_processors
from tmux_runner.runner import RunSummary, TmuxRunner
from tmux_runner.session import SessionCreationError


@dataclass(slots=True)
class RunCommand:
    """CLI input for one tmux run."""

    command: str
    tasks: tuple[str, ...] = ()
    tasks_file: Path | None = None
    session_prefix: str | None = None
    session_id: str | None = None
    processors: tuple[str, ...] = ()
    interactive: bool | None = None


@dataclass(slots=True)
class RunResult:
    """Lines to print after a run and whether it ended cleanly."""

    success: bool
    lines: list[str]


RunnerFactory = Callable[..., TmuxRunner]


class RunnerCliController:
    """Translate CLI commands into runner calls and printable lines."""

    def __init__(
        self,
        *,
        runner_factory: RunnerFactory = TmuxRunner,
        settings_loader: Callable[[], RunnerSettings] = RunnerSettings.from_env,
        emit: Emit = click.echo,
    ) -> None:
        self._runner_factory = runner_factory
        self._settings_loader = settings_loader
        self._emit = emit

    def run(self, command: RunCommand) -> RunResult:
        settings = self._settings_for(command)
        tasks = collect_tasks(command.tasks, command.tasks_file)

        runner = self._runner_factory(
            command.command,
            command.session_prefix or settings.session_prefix,
            command.session_id or "",
            settings=settings,
            emit=self._emit,
        )
        loaded = runner.load_processors(command.processors or None)
        if not loaded:
            self._emit("No processors loaded; polling until interrupted.")

        try:
            runner.start(TaskQueue.from_commands(tasks), len(tasks))
        except SessionCreationError as error:
            return RunResult(success=False, lines=[str(error)])

        summary = runner.wait_for_completion()
        return RunResult(
            success=summary.halt_reason != HaltReason.ERROR.value,
            lines=render_summary_lines(summary),
        )

    def processors(self) -> list[str]:
        names = available_processors()
        return ["Registered processors:", *(f"  {name}" for name in names)]

    def _settings_for(self, command: RunCommand) -> RunnerSettings:
        settings = self._settings_loader()
        if command.interactive is not None:
            settings = replace(settings, interactive=command.interactive)
        settings.validate()
        return settings


def collect_tasks(tasks: tuple[str, ...], tasks_file: Path | None) -> list[str]:
    """Merge inline tasks with non-blank, non-comment lines of *tasks_file*."""

    collected = [task for task in tasks if task.strip()]
    if tasks_file is None:
        return collected
    for raw_line in tasks_file.read_text("utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        collected.append(line)
    return collected


def render_summary_lines(summary: RunSummary) -> list[str]:
    lines = [
        f"Session: {summary.session_name}",
        f"Halt reason: {summary.halt_reason or 'stopped'}",
        f"Dispatched: {summary.dispatched - 1}/{summary.total}",
        f"Remaining: {summary.remaining}",
    ]
    if summary.stop_signal:
        lines.append(f"Stopped by: {summary.stop_signal}")
    return lines
