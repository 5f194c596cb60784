"""Output processors and the registry that builds them by name."""

from tmux_runner.processors.dispatch import TaskDispatchProcessor
from tmux_runner.processors.echo import LineEchoProcessor, now_str
from tmux_runner.processors.registry import (
    ProcessorLoadError,
    available_processors,
    build_processors,
    register_processor,
    resolve_processor,
)
from tmux_runner.processors.stop import StopPatternProcessor

__all__ = [
    "LineEchoProcessor",
    "ProcessorLoadError",
    "StopPatternProcessor",
    "TaskDispatchProcessor",
    "available_processors",
    "build_processors",
    "now_str",
    "register_processor",
    "resolve_processor",
]
