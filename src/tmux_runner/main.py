"""CLI entrypoint for tmux-runner."""

import logging
from pathlib import Path

import rich_click as click

from tmux_runner import __version__
from tmux_runner.controllers import RunCommand, RunnerCliController

click.rich_click.USE_MARKDOWN = True
RUNNER_CONTROLLER = RunnerCliController()


@click.group()
@click.version_option(version=__version__, prog_name="tmux-runner")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for diagnostics on stderr.",
)
def tmux_runner(log_level: str) -> None:
    """Drive a tmux session with a queue of commands."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@tmux_runner.command("run")
@click.option("--command", "session_command", required=True, help="Command the session runs.")
@click.option("--task", "tasks", multiple=True, help="Command to send. Can be repeated.")
@click.option(
    "--tasks-file",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="File with one task per line; blank lines and `#` comments are skipped.",
)
@click.option(
    "--session-prefix",
    default=None,
    help="Prefix for generated session names. Defaults to TMUX_RUNNER_SESSION_PREFIX.",
)
@click.option("--session-id", default=None, help="Explicit session name to create or reuse.")
@click.option(
    "--processor",
    "processors",
    multiple=True,
    help=(
        "Processor name or `module:Class` path, in pipeline order. Can be repeated. "
        "Defaults to TMUX_RUNNER_PROCESSORS."
    ),
)
@click.option(
    "--interactive/--no-interactive",
    default=None,
    help="Read `exit`/`quit` from the console while the run is active.",
)
def run(  # noqa: PLR0913
    session_command: str,
    tasks: tuple[str, ...],
    tasks_file: Path | None,
    session_prefix: str | None,
    session_id: str | None,
    processors: tuple[str, ...],
    interactive: bool | None,
) -> None:
    """Start a session, dispatch tasks and clean up when the run ends."""

    try:
        result = RUNNER_CONTROLLER.run(
            RunCommand(
                command=session_command,
                tasks=tasks,
                tasks_file=tasks_file,
                session_prefix=session_prefix,
                session_id=session_id,
                processors=processors,
                interactive=interactive,
            ),
        )
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("tmux run failed.")


@tmux_runner.command("processors")
def processors_list() -> None:
    """List registered processor names."""

    _emit_lines(RUNNER_CONTROLLER.processors())


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    tmux_runner()
