"""Background loop that polls a tmux pane and drives the processor chain."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from enum import StrEnum

from tmux_runner.pipeline import (
    Emit,
    FinalPrintGuard,
    OutputProcessor,
    SessionCapabilities,
    TaskQueue,
    TickContext,
)

logger = logging.getLogger(__name__)


class MonitorState(StrEnum):
    IDLE = "idle"
    POLLING = "polling"
    DISPATCHING = "dispatching"
    HALTED = "halted"


class HaltReason(StrEnum):
    PROCESSOR_STOP = "processor_stop"
    ERROR = "error"
    INTERRUPTED = "interrupted"


def last_non_blank_line(text: str | None) -> str | None:
    """Return the last line of *text* that is not whitespace only."""

    if not text:
        return None
    for line in reversed(text.splitlines()):
        if line.strip():
            return line
    return None


class MonitoringLoop:
    """Poll the session pane on a fixed interval and dispatch each tick.

    The loop runs on a single daemon thread. Processors are called strictly in
    registration order on that thread, so they may mutate the task queue
    without locking. ``interrupt`` is honoured at the sleep point; once the
    loop reaches ``HALTED`` it never resumes.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        session_name: str,
        session: SessionCapabilities,
        processors: Sequence[OutputProcessor],
        queue: TaskQueue,
        printed: FinalPrintGuard,
        emit: Emit,
        poll_interval_seconds: float = 0.1,
    ) -> None:
        self.session_name = session_name
        self.session = session
        self.processors = tuple(processors)
        self.queue = queue
        self.printed = printed
        self.emit = emit
        self.poll_interval_seconds = poll_interval_seconds
        self.state = MonitorState.IDLE
        self.halt_reason: HaltReason | None = None
        self.error: BaseException | None = None
        self.ticks = 0
        self.idle_ticks = 0
        self.invocations = 0
        self._stop = threading.Event()
        self._halted = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_halted(self) -> bool:
        return self._halted.is_set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    @property
    def thread(self) -> threading.Thread | None:
        return self._thread

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Monitoring loop already started.")
        self._thread = threading.Thread(
            target=self.run,
            daemon=True,
            name="tmux-runner-monitor",
        )
        self._thread.start()
        logger.debug("Monitoring thread started for %s", self.session_name)

    def interrupt(self) -> None:
        self._stop.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the loop halts; False if *timeout* expired first."""

        return self._halted.wait(timeout=timeout)

    def join(self, timeout: float | None = None) -> None:
        if self._thread is None or self._thread is threading.current_thread():
            return
        self._thread.join(timeout=timeout)

    def run(self) -> None:
        self.state = MonitorState.POLLING
        try:
            while True:
                if self._stop.wait(timeout=self.poll_interval_seconds):
                    self._halt(HaltReason.INTERRUPTED)
                    return
                try:
                    should_continue = self.tick()
                except Exception as error:  # noqa: BLE001
                    self.error = error
                    if not self._stop.is_set():
                        logger.error("Error in monitoring %s: %s", self.session_name, error)
                        self.emit(f">>> Error in monitoring: {error}")
                    self._halt(HaltReason.ERROR)
                    return
                if not should_continue:
                    self._halt(HaltReason.PROCESSOR_STOP)
                    return
        finally:
            self.state = MonitorState.HALTED
            self._halted.set()

    def tick(self) -> bool:
        """Capture once and dispatch the latest line; False means halt."""

        self.ticks += 1
        line = last_non_blank_line(self.session.capture_pane())
        if line is None:
            self.idle_ticks += 1
            return True

        self.state = MonitorState.DISPATCHING
        context = TickContext(
            session_name=self.session_name,
            line=line,
            queue=self.queue,
            printed=self.printed,
            session=self.session,
            emit=self.emit,
        )
        for processor in self.processors:
            self.invocations += 1
            if not processor.process_output(context):
                logger.info(
                    "Processor %s stopped session %s",
                    type(processor).__name__,
                    self.session_name,
                )
                return False
        self.state = MonitorState.POLLING
        return True

    def _halt(self, reason: HaltReason) -> None:
        self.halt_reason = reason
        if reason in {HaltReason.ERROR, HaltReason.INTERRUPTED}:
            self._print_final_pane()
        logger.info("Monitoring of %s halted: %s", self.session_name, reason.value)

    def _print_final_pane(self) -> None:
        try:
            self.printed.print_once(self.session.capture_pane, self.emit)
        except Exception:  # noqa: BLE001
            logger.warning("Final pane capture failed for %s", self.session_name, exc_info=True)
