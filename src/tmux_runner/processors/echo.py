"""Mirror the session's latest line to the console."""

from __future__ import annotations

from datetime import datetime

from tmux_runner.config import ProcessorSettings
from tmux_runner.pipeline import TickContext
from tmux_runner.processors.registry import register_processor


def now_str(moment: datetime | None = None) -> str:
    """Local timestamp with millisecond precision."""

    value = moment or datetime.now()  # noqa: DTZ005
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}"


class LineEchoProcessor:
    """Echo each new latest line once, prefixed with a timestamp."""

    def __init__(self) -> None:
        self._last_line: str | None = None

    def process_output(self, context: TickContext) -> bool:
        if context.line != self._last_line:
            self._last_line = context.line
            context.emit(f"{now_str()} {context.line}")
        return True


@register_processor("echo")
def _build_echo(_settings: ProcessorSettings) -> LineEchoProcessor:
    return LineEchoProcessor()
