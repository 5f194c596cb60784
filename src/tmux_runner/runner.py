"""TmuxRunner: lifecycle of one tmux session and its monitoring loop."""

from __future__ import annotations

import atexit
import logging
import signal
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from queue import Empty, Queue
from uuid import uuid4

import click

from tmux_runner.config import DEFAULT_SESSION_PREFIX, RunnerSettings
from tmux_runner.monitor import MonitoringLoop
from tmux_runner.pipeline import (
    Emit,
    FinalPrintGuard,
    OutputProcessor,
    SessionCapabilities,
    TaskQueue,
)
from tmux_runner.processors import build_processors
from tmux_runner.session import SessionCreationError, TmuxSessionController

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"exit", "quit"})
MONITOR_JOIN_SECONDS = 5.0

ConsoleReader = Callable[[], str | None]


class RunnerState(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(slots=True)
class RunSummary:
    """Outcome of one run for CLI reporting."""

    session_name: str
    halt_reason: str | None
    dispatched: int
    total: int
    remaining: int
    ticks: int
    stop_signal: str | None = None


def _read_console_line() -> str | None:
    try:
        return input("> ")
    except EOFError:
        return None


class TmuxRunner:
    """Run *command* in a tmux session and feed it tasks through processors."""

    def __init__(  # noqa: PLR0913
        self,
        command: str,
        session_prefix: str = DEFAULT_SESSION_PREFIX,
        session_id: str = "",
        *,
        settings: RunnerSettings | None = None,
        controller: TmuxSessionController | None = None,
        emit: Emit = click.echo,
        console: ConsoleReader | None = None,
    ) -> None:
        self.command = command
        self.settings = settings or RunnerSettings()
        if session_id.strip():
            self.session_name = session_id
        else:
            self.session_name = f"{session_prefix}-{uuid4()}"
        self.controller = controller or TmuxSessionController(
            tmux_command=self.settings.tmux_command,
            capture_lines=self.settings.capture_lines,
        )
        self.emit = emit
        self.interactive = console is not None or self.settings.interactive
        self._console = console or _read_console_line
        self.processors: list[OutputProcessor] = []
        self.printed = FinalPrintGuard()
        self.queue: TaskQueue | None = None
        self._state = RunnerState.NOT_STARTED
        self._monitor: MonitoringLoop | None = None
        self._interrupted = threading.Event()
        self._stop_signal_name: str | None = None
        self._original_sigterm: object = signal.SIG_DFL
        self._sigterm_installed = False
        self._cleanup_lock = threading.Lock()
        self._cleaned_up = False

    @property
    def state(self) -> RunnerState:
        if self._state is RunnerState.RUNNING and self._monitor is not None:
            if self._monitor.is_halted:
                return RunnerState.STOPPED
        return self._state

    @property
    def is_running(self) -> bool:
        return self.state is RunnerState.RUNNING

    @property
    def monitor(self) -> MonitoringLoop | None:
        return self._monitor

    def add_processor(self, processor: OutputProcessor) -> None:
        if self._state is not RunnerState.NOT_STARTED:
            raise RuntimeError("Processors must be registered before start().")
        self.processors.append(processor)

    def load_processors(self, names: Iterable[str] | None = None) -> list[str]:
        """Register processors by name; names that fail to load are skipped."""

        selected = tuple(names) if names is not None else self.settings.processors
        loaded = build_processors(selected, self.settings.processor, emit=self.emit)
        for _, processor in loaded:
            self.add_processor(processor)
        return [name for name, _ in loaded]

    def start(self, queue: TaskQueue, total: int) -> None:
        """Create or reuse the session and launch monitoring; does not block."""

        if self._state is not RunnerState.NOT_STARTED:
            raise RuntimeError(f"Runner for {self.session_name} was already started.")
        if not self.controller.ensure_session(self.session_name, self.command):
            detail = self.controller.last_error or "unknown error"
            self.emit(f"Error creating tmux session {self.session_name}. {detail}")
            raise SessionCreationError(
                f"Failed to create tmux session {self.session_name}: {detail}",
                session_name=self.session_name,
            )

        self._state = RunnerState.RUNNING
        atexit.register(self.cleanup)
        self._install_termination_handler()

        queue.begin(total)
        self.queue = queue
        self._monitor = MonitoringLoop(
            session_name=self.session_name,
            session=SessionCapabilities.bind(self.controller, self.session_name),
            processors=self.processors,
            queue=queue,
            printed=self.printed,
            emit=self.emit,
            poll_interval_seconds=self.settings.poll_interval_seconds,
        )
        self._monitor.start()
        logger.info("TmuxRunner started with session %s", self.session_name)
        self.emit(f"TmuxRunner started with session: {self.session_name}")

    def wait_for_completion(self) -> RunSummary:
        """Block until the loop halts, a signal arrives or the operator exits."""

        if self._monitor is None:
            raise RuntimeError("Runner has not been started.")
        with self._signal_handlers():
            if self.interactive:
                self._wait_interactive()
            else:
                self._wait_headless()
            if self._interrupted.is_set():
                self._print_final_pane()
        self.cleanup()
        return self.summary()

    def request_stop(self, *, signal_name: str = "manual") -> None:
        logger.info("Stop requested for %s (%s)", self.session_name, signal_name)
        self._stop_signal_name = signal_name
        self._interrupted.set()

    def cleanup(self) -> None:
        """Print the final pane, stop monitoring and destroy the session once."""

        with self._cleanup_lock:
            first = not self._cleaned_up and self._state is not RunnerState.NOT_STARTED
            self._cleaned_up = self._cleaned_up or first
        if not first:
            self._restore_termination_handler()
            return

        self._print_final_pane()
        self._state = RunnerState.STOPPED
        if self._monitor is not None:
            self._monitor.interrupt()
            self._monitor.join(timeout=self.settings.poll_interval_seconds + MONITOR_JOIN_SECONDS)

        try:
            self.controller.send_interrupt(self.session_name)
        except OSError as error:
            logger.warning("Could not interrupt session %s: %s", self.session_name, error)
        time.sleep(self.settings.cleanup_grace_seconds)
        exit_code = self.controller.terminate(self.session_name)
        logger.info("Session %s terminated (exit code %d)", self.session_name, exit_code)
        atexit.unregister(self.cleanup)
        self._restore_termination_handler()

    def summary(self) -> RunSummary:
        queue = self.queue or TaskQueue()
        monitor = self._monitor
        return RunSummary(
            session_name=self.session_name,
            halt_reason=(
                monitor.halt_reason.value
                if monitor is not None and monitor.halt_reason is not None
                else None
            ),
            dispatched=queue.dispatched,
            total=queue.total,
            remaining=queue.remaining,
            ticks=monitor.ticks if monitor is not None else 0,
            stop_signal=self._stop_signal_name,
        )

    def _wait_headless(self) -> None:
        self.emit("Run in terminal for interactive mode. Press Ctrl+C to stop.")
        monitor = self._monitor
        assert monitor is not None
        while not monitor.is_halted:
            if self._interrupted.wait(timeout=self.settings.poll_interval_seconds):
                return

    def _wait_interactive(self) -> None:
        """Read console lines until exit, EOF, a stop request or a halted loop.

        The reader thread is a daemon and may stay blocked in ``input()`` after
        the wait returns; it dies with the process.
        """

        lines: Queue[str | None] = Queue()
        reader = threading.Thread(
            target=self._pump_console,
            args=(lines,),
            daemon=True,
            name="tmux-runner-console",
        )
        reader.start()
        while self.is_running and not self._interrupted.is_set():
            try:
                entry = lines.get(timeout=self.settings.poll_interval_seconds)
            except Empty:
                continue
            if entry is None or entry.strip() in EXIT_COMMANDS:
                self.emit("Exiting...")
                return
            logger.debug("Ignoring console input %r", entry)

    def _pump_console(self, lines: Queue[str | None]) -> None:
        while True:
            entry = self._console()
            lines.put(entry)
            if entry is None:
                return

    def _print_final_pane(self) -> None:
        self.printed.print_once(
            lambda: self.controller.capture_pane(self.session_name),
            self.emit,
        )

    def _install_termination_handler(self) -> None:
        """Route SIGTERM to cleanup for the whole run, not only while waiting."""

        if not hasattr(signal, "SIGTERM"):
            return
        try:
            original = signal.signal(signal.SIGTERM, self._on_terminate)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            logger.debug("SIGTERM cleanup for %s relies on atexit only", self.session_name)
            return
        self._original_sigterm = signal.SIG_DFL if original is None else original
        self._sigterm_installed = True

    def _restore_termination_handler(self) -> None:
        if not self._sigterm_installed:
            return
        try:
            signal.signal(signal.SIGTERM, self._original_sigterm)
        except ValueError:
            logger.debug("SIGTERM handler for %s kept off main thread", self.session_name)
            return
        self._sigterm_installed = False

    def _on_terminate(self, signum: int, _: object | None) -> None:
        self._stop_signal_name = signal.Signals(signum).name
        logger.info("Received %s; cleaning up %s", self._stop_signal_name, self.session_name)
        self.cleanup()
        raise SystemExit(128 + signum)

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            yield
            return
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
