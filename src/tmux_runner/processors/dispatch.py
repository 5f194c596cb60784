"""Feed queued tasks to the session whenever its prompt is ready."""

from __future__ import annotations

import logging
import re

from tmux_runner.config import DEFAULT_SETTLE_TICKS, ProcessorSettings
from tmux_runner.pipeline import TickContext
from tmux_runner.processors.registry import register_processor

logger = logging.getLogger(__name__)


class TaskDispatchProcessor:
    """Send the next task each time the latest line matches the ready pattern.

    The pane is snapshotted just before every send. A ready prompt only counts
    once the pane differs from that snapshot, so keys tmux has not rendered yet
    never earn a second dispatch. A task that leaves the pane exactly as it was
    (``clear`` on a fresh prompt) is accepted after *settle_ticks* ready ticks
    with no change. Ready with an empty queue completes the run.
    """

    def __init__(self, ready_pattern: str, settle_ticks: int = DEFAULT_SETTLE_TICKS) -> None:
        self.ready_pattern = re.compile(ready_pattern)
        self.settle_ticks = settle_ticks
        self._pane_at_dispatch: str | None = None
        self._unchanged_ticks = 0

    def process_output(self, context: TickContext) -> bool:
        if not self.ready_pattern.search(context.line):
            return True
        pane = context.session.capture_pane()
        if self._pane_at_dispatch is not None and pane == self._pane_at_dispatch:
            self._unchanged_ticks += 1
            if self._unchanged_ticks < self.settle_ticks:
                return True
            logger.debug(
                "Pane of %s unchanged for %d ready ticks; treating it as settled",
                context.session_name,
                self._unchanged_ticks,
            )

        queue = context.queue
        task = queue.pop()
        if task is None:
            logger.info("All %d tasks dispatched to %s", queue.total, context.session_name)
            context.print_final_pane()
            return False

        context.emit(f"[{queue.dispatched}/{queue.total}] {task}")
        self._pane_at_dispatch = pane
        self._unchanged_ticks = 0
        exit_code = context.session.send_task(task)
        if exit_code != 0:
            logger.warning("send-keys exited %d for task %r", exit_code, task)
        queue.mark_dispatched()
        return True


@register_processor("dispatch")
def _build_dispatch(settings: ProcessorSettings) -> TaskDispatchProcessor:
    return TaskDispatchProcessor(settings.ready_pattern, settings.settle_ticks)
