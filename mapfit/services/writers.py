"""Sinks receiving the header, iterates and messages of an optimization run.

A run writes to three places:

- ``output``: the header (``lp__`` plus parameter names) once, then one
  :class:`~mapfit.optimize.core.IterationRecord` per emitted iterate;
- ``info``: human-readable progress and termination messages;
- ``error``: messages of failed model evaluations and usage errors.

By default the message sinks forward to the ``mapfit.services`` logger and
iterates are discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence

from mapfit.logging import get_logger
from mapfit.optimize.core import IterationRecord

MessageWriter = Callable[[str], None]


class OutputWriter(Protocol):
    def write_header(self, names: Sequence[str]) -> None: ...

    def write_record(self, record: IterationRecord) -> None: ...


class NullOutputWriter:
    """Discards everything."""

    def write_header(self, names: Sequence[str]) -> None:
        pass

    def write_record(self, record: IterationRecord) -> None:
        pass


class MemoryOutputWriter:
    """Keeps headers and records in memory, in emission order."""

    def __init__(self) -> None:
        self.headers: list[list[str]] = []
        self.records: list[IterationRecord] = []

    def write_header(self, names: Sequence[str]) -> None:
        self.headers.append(list(names))

    def write_record(self, record: IterationRecord) -> None:
        self.records.append(record)

    @property
    def last(self) -> Optional[IterationRecord]:
        return self.records[-1] if self.records else None


def log_writer(level: int = logging.INFO, logger: Optional[logging.Logger] = None) -> MessageWriter:
    """Return a message sink that logs each message at ``level``."""
    target = logger if logger is not None else get_logger("mapfit.services")

    def write(message: str) -> None:
        target.log(level, message)

    return write


@dataclass
class Writers:
    """The output, info and error sinks of one run."""

    output: OutputWriter = field(default_factory=NullOutputWriter)
    info: MessageWriter = field(default_factory=lambda: log_writer(logging.INFO))
    error: MessageWriter = field(default_factory=lambda: log_writer(logging.ERROR))


__all__ = [
    "MemoryOutputWriter",
    "MessageWriter",
    "NullOutputWriter",
    "OutputWriter",
    "Writers",
    "log_writer",
]
