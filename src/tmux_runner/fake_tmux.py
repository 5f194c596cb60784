"""Deterministic tmux stand-in for runner integration tests.

Implements the subset of the tmux CLI the runner uses, keeping sessions in a
JSON state file. Sessions emulate a tiny shell: ``echo <text>`` prints its
argument, any other command prints nothing, and every command is followed
by a fresh ``$ `` prompt.
"""

from __future__ import annotations

import argparse
import fcntl
import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

PROMPT = "$ "


@contextmanager
def _locked_state(path: Path) -> Iterator[dict[str, dict[str, object]]]:
    lock_path = path.with_suffix(path.suffix + ".lock")
    with lock_path.open("a", encoding="utf-8") as lock_handle:
        fcntl.flock(lock_handle, fcntl.LOCK_EX)
        try:
            state = json.loads(path.read_text("utf-8")) if path.exists() else {}
            yield state
            path.write_text(json.dumps(state), "utf-8")
        finally:
            fcntl.flock(lock_handle, fcntl.LOCK_UN)


def _apply_keys(session: dict[str, object], tokens: list[str]) -> None:
    lines: list[str] = session["lines"]  # type: ignore[assignment]
    sent: list[str] = session["sent"]  # type: ignore[assignment]
    pending = str(session.get("pending", ""))
    for token in tokens:
        if token == "Enter":
            lines[-1] = PROMPT + pending
            sent.append(pending)
            if pending.startswith("echo "):
                lines.append(pending[len("echo ") :])
            lines.append(PROMPT)
            pending = ""
        elif token == "C-c":
            lines[-1] = PROMPT + pending + "^C"
            lines.append(PROMPT)
            pending = ""
        else:
            pending += token
    session["pending"] = pending


def main(argv: list[str] | None = None) -> int:
    """Execute one tmux-style command against the state file."""

    parser = argparse.ArgumentParser(prog="fake_tmux")
    parser.add_argument("--state", required=True)
    parser.add_argument("--fail-new-session", action="store_true")
    parser.add_argument("action")
    parser.add_argument("rest", nargs=argparse.REMAINDER)
    args = parser.parse_args(argv)

    rest: list[str] = args.rest
    with _locked_state(Path(args.state)) as state:
        if args.action == "has-session":
            return 0 if _target(rest) in state else 1

        if args.action == "new-session":
            name = rest[rest.index("-s") + 1]
            if args.fail_new_session:
                sys.stderr.write(f"create session failed: {name}\n")
                return 1
            state[name] = {
                "command": rest[rest.index("-s") + 2 :],
                "lines": [PROMPT],
                "sent": [],
                "pending": "",
            }
            return 0

        name = _target(rest)
        session = state.get(name)
        if session is None:
            sys.stderr.write(f"can't find session: {name}\n")
            return 1

        if args.action == "capture-pane":
            count = int(rest[rest.index("-pS") + 1].lstrip("-"))
            lines: list[str] = session["lines"]  # type: ignore[assignment]
            sys.stdout.write("\n".join(lines[-count:]) + "\n")
            return 0
        if args.action == "send-keys":
            _apply_keys(session, rest[rest.index("-t") + 2 :])
            return 0
        if args.action == "kill-session":
            del state[name]
            return 0

    sys.stderr.write(f"unknown command: {args.action}\n")
    return 1


def _target(rest: list[str]) -> str:
    return rest[rest.index("-t") + 1]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
