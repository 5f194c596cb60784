"""Stop the run when the session prints a configured marker."""

from __future__ import annotations

import logging
import re

from tmux_runner.config import ProcessorSettings
from tmux_runner.pipeline import TickContext
from tmux_runner.processors.registry import register_processor

logger = logging.getLogger(__name__)


class StopPatternProcessor:
    """Halt the pipeline on the first line matching *stop_pattern*."""

    def __init__(self, stop_pattern: str = "") -> None:
        self.stop_pattern = re.compile(stop_pattern) if stop_pattern else None

    def process_output(self, context: TickContext) -> bool:
        if self.stop_pattern is None or not self.stop_pattern.search(context.line):
            return True
        logger.info("Stop pattern matched in %s: %r", context.session_name, context.line)
        context.print_final_pane()
        return False


@register_processor("stop-on")
def _build_stop(settings: ProcessorSettings) -> StopPatternProcessor:
    return StopPatternProcessor(settings.stop_pattern)
