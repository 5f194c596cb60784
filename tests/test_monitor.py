from __future__ import annotations

import allure
import pytest

from conftest import Console, FakeTmux, make_controller
from tmux_runner.monitor import HaltReason, MonitoringLoop, MonitorState, last_non_blank_line
from tmux_runner.pipeline import FinalPrintGuard, SessionCapabilities, TaskQueue, TickContext
from tmux_runner.processors import TaskDispatchProcessor

pytestmark = [
    allure.epic("Monitoring Loop"),
    allure.feature("Polling and Dispatch"),
]


class RecordingProcessor:
    def __init__(self, name: str, calls: list[str], *, result: bool = True) -> None:
        self.name = name
        self.calls = calls
        self.result = result

    def process_output(self, context: TickContext) -> bool:
        self.calls.append(f"{self.name}:{context.line}")
        return self.result


class DoneDispatcher:
    """Send the next task whenever the pane reports DONE."""

    def __init__(self) -> None:
        self.observed: list[int] = []

    def process_output(self, context: TickContext) -> bool:
        if "DONE" in context.line:
            task = context.queue.pop()
            if task is not None:
                context.session.send_task(task)
                context.queue.mark_dispatched()
        self.observed.append(context.queue.dispatched)
        return True


class ExplodingProcessor:
    def process_output(self, context: TickContext) -> bool:
        raise RuntimeError("processor blew up")


def _loop(
    tmux: FakeTmux,
    processors: list,
    console: Console,
    *,
    queue: TaskQueue | None = None,
    printed: FinalPrintGuard | None = None,
) -> MonitoringLoop:
    return MonitoringLoop(
        session_name="mon",
        session=SessionCapabilities.bind(make_controller(tmux), "mon"),
        processors=processors,
        queue=queue or TaskQueue(),
        printed=printed or FinalPrintGuard(),
        emit=console,
        poll_interval_seconds=0.01,
    )


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("one\ntwo\n\n   \n", "two"),
        ("  \n\t\n", None),
        ("", None),
        (None, None),
        ("only", "only"),
    ],
)
def test_last_non_blank_line(text: str | None, expected: str | None) -> None:
    assert last_non_blank_line(text) == expected


def test_first_false_short_circuits_remaining_processors(console: Console) -> None:
    calls: list[str] = []
    tmux = FakeTmux(sessions=("mon",), panes=["$ ready\n"])
    loop = _loop(
        tmux,
        [
            RecordingProcessor("p1", calls),
            RecordingProcessor("p2", calls, result=False),
            RecordingProcessor("p3", calls),
        ],
        console,
    )

    loop.start()
    assert loop.wait(timeout=5)

    assert calls == ["p1:$ ready", "p2:$ ready"]
    assert loop.halt_reason is HaltReason.PROCESSOR_STOP
    assert loop.state is MonitorState.HALTED


def test_blank_capture_invokes_no_processor(console: Console) -> None:
    calls: list[str] = []
    tmux = FakeTmux(sessions=("mon",), panes=["\n   \n\n"])
    loop = _loop(tmux, [RecordingProcessor("p1", calls)], console)

    assert loop.tick() is True
    assert loop.tick() is True

    assert calls == []
    assert loop.idle_ticks == 2
    assert loop.state is MonitorState.IDLE
    assert loop.is_halted is False


def test_done_scenario_dispatches_two_tasks(console: Console) -> None:
    tmux = FakeTmux(sessions=("mon",), panes=["running\n", "DONE\n", "running\n", "DONE\n"])
    queue = TaskQueue.from_commands(["echo A", "echo B"])
    queue.begin(2)
    dispatcher = DoneDispatcher()
    loop = _loop(tmux, [dispatcher], console, queue=queue)

    for _ in range(4):
        assert loop.tick() is True

    assert [call[4:] for call in tmux.actions("send-keys")] == [
        ["echo A", "Enter"],
        ["echo B", "Enter"],
    ]
    assert queue.dispatched == 3
    assert queue.is_empty
    assert dispatcher.observed == sorted(dispatcher.observed)


def test_processor_error_halts_loop_and_prints_final_pane_once(console: Console) -> None:
    tmux = FakeTmux(sessions=("mon",), panes=["$ boom\n"])
    printed = FinalPrintGuard()
    loop = _loop(tmux, [ExplodingProcessor()], console, printed=printed)

    loop.start()
    assert loop.wait(timeout=5)

    assert loop.halt_reason is HaltReason.ERROR
    assert isinstance(loop.error, RuntimeError)
    assert ">>> Error in monitoring: processor blew up" in console.lines
    assert console.count("$ boom\n") == 1
    assert printed.claimed


def test_interrupt_is_a_clean_halt_with_guarded_print(console: Console) -> None:
    tmux = FakeTmux(sessions=("mon",), panes=["$ waiting\n"])
    printed = FinalPrintGuard()
    loop = _loop(tmux, [], console, printed=printed)
    printed.claim()

    loop.start()
    loop.interrupt()
    assert loop.wait(timeout=5)

    assert loop.halt_reason is HaltReason.INTERRUPTED
    assert loop.error is None
    assert console.lines == []


def test_zero_processors_keep_polling_until_interrupted(console: Console) -> None:
    tmux = FakeTmux(sessions=("mon",), panes=["$ idle\n"])
    loop = _loop(tmux, [], console)

    loop.start()
    assert loop.wait(timeout=0.3) is False
    assert loop.ticks > 1
    assert loop.state is not MonitorState.HALTED

    loop.interrupt()
    assert loop.wait(timeout=5)
    assert loop.halt_reason is HaltReason.INTERRUPTED
    assert console.count("$ idle\n") == 1


def test_loop_cannot_start_twice(console: Console) -> None:
    loop = _loop(FakeTmux(sessions=("mon",)), [], console)
    loop.start()
    try:
        with pytest.raises(RuntimeError, match="already started"):
            loop.start()
    finally:
        loop.interrupt()
        loop.join(timeout=5)


def test_dispatch_completes_when_pane_never_changes(console: Console) -> None:
    tmux = FakeTmux(sessions=("mon",), panes=["$ \n"])
    queue = TaskQueue.from_commands(["clear", "echo B"])
    queue.begin(2)
    loop = _loop(tmux, [TaskDispatchProcessor(r"[$#>]\s*$")], console, queue=queue)

    ticks = 1
    while loop.tick():
        ticks += 1
        assert ticks < 50

    assert [call[4:] for call in tmux.actions("send-keys")] == [
        ["clear", "Enter"],
        ["echo B", "Enter"],
    ]
    assert queue.remaining == 0
    assert console.lines[:2] == ["[1/2] clear", "[2/2] echo B"]
