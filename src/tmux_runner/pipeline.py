"""Shared run state and the contract every output processor implements."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from tmux_runner.session import TmuxSessionController

Emit = Callable[[str], None]


@dataclass(slots=True)
class TaskQueue:
    """Stack of pending shell commands plus dispatch counters.

    ``pop`` serves the most recently pushed command first. ``dispatched`` starts
    at 1 when a run begins and is only advanced by processors.
    """

    tasks: list[str] = field(default_factory=list)
    total: int = 0
    dispatched: int = 1

    @classmethod
    def from_commands(cls, commands: Iterable[str]) -> TaskQueue:
        """Build a queue that pops *commands* in the order given."""

        ordered = list(commands)
        return cls(tasks=list(reversed(ordered)), total=len(ordered))

    def push(self, task: str) -> None:
        self.tasks.append(task)

    def pop(self) -> str | None:
        if not self.tasks:
            return None
        return self.tasks.pop()

    def peek(self) -> str | None:
        return self.tasks[-1] if self.tasks else None

    @property
    def remaining(self) -> int:
        return len(self.tasks)

    @property
    def is_empty(self) -> bool:
        return not self.tasks

    def begin(self, total: int) -> None:
        if total < 0:
            raise ValueError(f"Task total must be >= 0, got {total}.")
        self.total = total
        self.dispatched = 1

    def mark_dispatched(self) -> int:
        """Advance the dispatch counter and return its new value."""

        self.dispatched += 1
        return self.dispatched


class FinalPrintGuard:
    """One-shot flag guarding the final pane print across threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claimed = False

    @property
    def claimed(self) -> bool:
        return self._claimed

    def claim(self) -> bool:
        """Atomically set the flag; True only for the first caller."""

        with self._lock:
            if self._claimed:
                return False
            self._claimed = True
            return True

    def print_once(self, capture: Callable[[], str], emit: Emit) -> bool:
        if not self.claim():
            return False
        emit(capture())
        return True


@dataclass(frozen=True, slots=True)
class SessionCapabilities:
    """The three session operations a processor may use."""

    send_task: Callable[[str], int]
    capture_pane: Callable[[], str]
    send_keys: Callable[..., int]

    @classmethod
    def bind(cls, controller: TmuxSessionController, session_name: str) -> SessionCapabilities:
        return cls(
            send_task=lambda command: controller.send_task(session_name, command),
            capture_pane=lambda: controller.capture_pane(session_name),
            send_keys=lambda *tokens: controller.send_keys(session_name, *tokens),
        )


@dataclass(slots=True)
class TickContext:
    """Everything one processor sees during one poll tick."""

    session_name: str
    line: str
    queue: TaskQueue
    printed: FinalPrintGuard
    session: SessionCapabilities
    emit: Emit

    def print_final_pane(self) -> bool:
        """Emit the current pane unless another exit path already did."""

        return self.printed.print_once(self.session.capture_pane, self.emit)


class OutputProcessor(Protocol):
    """Protocol implemented by pipeline processors."""

    def process_output(self, context: TickContext) -> bool:
        """Inspect the latest line; return False to stop the run."""
