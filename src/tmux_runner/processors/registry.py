"""Name-keyed processor factories."""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable, Iterable

import click

from tmux_runner.config import ProcessorSettings
from tmux_runner.pipeline import Emit, OutputProcessor

logger = logging.getLogger(__name__)

ProcessorFactory = Callable[[ProcessorSettings], OutputProcessor]

_FACTORIES: dict[str, ProcessorFactory] = {}


class ProcessorLoadError(RuntimeError):
    """A processor name could not be resolved or instantiated."""

    def __init__(self, message: str, *, name: str) -> None:
        super().__init__(message)
        self.name = name


def register_processor(name: str) -> Callable[[ProcessorFactory], ProcessorFactory]:
    """Register a factory under *name*; later registrations replace earlier ones."""

    def _decorator(factory: ProcessorFactory) -> ProcessorFactory:
        _FACTORIES[name] = factory
        return factory

    return _decorator


def available_processors() -> list[str]:
    return sorted(_FACTORIES)


def resolve_processor(name: str, settings: ProcessorSettings) -> OutputProcessor:
    """Instantiate one processor by registry name or ``module:attribute`` path."""

    factory = _FACTORIES.get(name)
    if factory is not None:
        try:
            return factory(settings)
        except Exception as error:  # noqa: BLE001
            raise ProcessorLoadError(str(error), name=name) from error

    if ":" not in name:
        raise ProcessorLoadError(
            f"Unknown processor; registered: {', '.join(available_processors()) or '-'}",
            name=name,
        )

    module_name, _, attribute = name.partition(":")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attribute)
        processor = target()
    except Exception as error:  # noqa: BLE001
        raise ProcessorLoadError(str(error), name=name) from error
    if not callable(getattr(processor, "process_output", None)):
        raise ProcessorLoadError("object has no process_output method", name=name)
    return processor


def build_processors(
    names: Iterable[str],
    settings: ProcessorSettings,
    *,
    emit: Emit = click.echo,
) -> list[tuple[str, OutputProcessor]]:
    """Resolve *names* in order, skipping any that fail to load."""

    loaded: list[tuple[str, OutputProcessor]] = []
    for name in names:
        try:
            processor = resolve_processor(name, settings)
        except ProcessorLoadError as error:
            logger.warning("Failed to load processor %r: %s", name, error)
            emit(f"Warning: Failed to load processor '{name}': {error}")
            continue
        loaded.append((name, processor))
        emit(f"Loaded: {name}")
    return loaded
