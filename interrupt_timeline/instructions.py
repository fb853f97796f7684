from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from interrupt_timeline.errors import InputFormatError


class Activity(str, Enum):
    """
    Trace-language vocabulary.

    CPU/SYSCALL/END_IO/FORK/EXEC advance the timeline; the three branch
    markers only shape which lines a forked child and its parent execute.
    """

    CPU = "CPU"
    SYSCALL = "SYSCALL"
    END_IO = "END_IO"
    FORK = "FORK"
    EXEC = "EXEC"
    IF_PARENT = "IF_PARENT"
    IF_CHILD = "IF_CHILD"
    ENDIF = "ENDIF"

    @property
    def is_marker(self) -> bool:
        return self in _MARKERS


_MARKERS = frozenset({Activity.IF_PARENT, Activity.IF_CHILD, Activity.ENDIF})


@dataclass(frozen=True, slots=True)
class Instruction:
    """
    One parsed trace line.

    operand meaning depends on activity:
      - CPU: burst duration
      - SYSCALL / END_IO: vector index
      - FORK: PCB clone duration
      - EXEC: program size lookup duration
    argument is the program name (EXEC only).
    source is the trace line as written, echoed in status logs.
    """

    activity: Activity
    operand: int = 0
    argument: str | None = None
    source: str | None = field(default=None, compare=False)

    def __str__(self) -> str:
        if self.source is not None:
            return self.source
        if self.activity == Activity.EXEC:
            return f"EXEC {self.argument}, {self.operand}"
        return f"{self.activity.value}, {self.operand}"


def parse_instruction(line: str) -> Instruction:
    """Parse a single trace line such as ``CPU, 50`` or ``EXEC program1, 50``.

    Branch markers may omit the operand (``IF_CHILD`` == ``IF_CHILD, 0``).
    """
    text = line.strip()
    if not text:
        raise InputFormatError("empty trace line")

    head, sep, tail = text.partition(",")
    words = head.split()
    if not words:
        raise InputFormatError(f"missing activity in trace line {line!r}")

    try:
        activity = Activity(words[0].upper())
    except ValueError as e:
        raise InputFormatError(f"unknown activity {words[0]!r} in trace line {line!r}") from e

    argument: str | None = None
    if activity == Activity.EXEC:
        if len(words) != 2:
            raise InputFormatError(f"EXEC must name exactly one program: {line!r}")
        argument = words[1]
    elif len(words) != 1:
        raise InputFormatError(f"unexpected tokens after {activity.value}: {line!r}")

    operand_text = tail.strip()
    if not sep or not operand_text:
        if activity.is_marker:
            return Instruction(activity, source=text)
        raise InputFormatError(f"{activity.value} requires an integer operand: {line!r}")

    try:
        operand = int(operand_text)
    except ValueError as e:
        raise InputFormatError(f"operand must be an int in trace line {line!r}") from e

    if activity == Activity.SYSCALL or activity == Activity.END_IO:
        if operand < 0:
            raise InputFormatError(f"vector index must be >= 0: {line!r}")

    return Instruction(activity, operand, argument, source=text)


def parse_trace(lines: Iterable[str]) -> tuple[Instruction, ...]:
    """Parse trace lines, skipping blank ones."""
    out: list[Instruction] = []
    for i, line in enumerate(lines):
        if not line.strip():
            continue
        try:
            out.append(parse_instruction(line))
        except InputFormatError as e:
            raise InputFormatError(f"line {i + 1}: {e}") from e
    return tuple(out)
