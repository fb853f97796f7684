from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from interrupt_timeline.instructions import Activity, Instruction


class _Scan(Enum):
    EXCLUDING = "excluding"
    CHILD = "including-child"
    AFTER_ENDIF = "after-endif"


@dataclass(frozen=True, slots=True)
class ForkBranches:
    """
    Result of scanning the lines after a FORK.

    child_trace: what the child executes.
    parent_resume: index of the marker the parent resumes after
                   (None means the parent has nothing left to run).
    """

    child_trace: tuple[Instruction, ...]
    parent_resume: int | None


def find_parent_resume(trace: Sequence[Instruction], fork_index: int) -> int | None:
    """
    Index of the first IF_PARENT before the closing ENDIF, else that ENDIF,
    else None.
    """
    for j in range(fork_index + 1, len(trace)):
        activity = trace[j].activity
        if activity == Activity.IF_PARENT or activity == Activity.ENDIF:
            return j
    return None


def split_fork_branches(trace: Sequence[Instruction], fork_index: int) -> ForkBranches:
    """
    Scan forward from a FORK and build the child-only trace.

    States:
      - EXCLUDING (initial): lines belong to the parent only
      - CHILD: entered on IF_CHILD, lines go to the child
      - AFTER_ENDIF: entered on ENDIF, every remaining line (markers included)
        is common code and goes to the child
    IF_PARENT moves back to EXCLUDING.
    """
    child: list[Instruction] = []
    state = _Scan.EXCLUDING

    for j in range(fork_index + 1, len(trace)):
        ins = trace[j]

        if state == _Scan.AFTER_ENDIF:
            child.append(ins)
            continue

        if ins.activity == Activity.IF_CHILD:
            state = _Scan.CHILD
        elif ins.activity == Activity.IF_PARENT:
            state = _Scan.EXCLUDING
        elif ins.activity == Activity.ENDIF:
            state = _Scan.AFTER_ENDIF
        elif state == _Scan.CHILD:
            child.append(ins)

    return ForkBranches(
        child_trace=tuple(child),
        parent_resume=find_parent_resume(trace, fork_index),
    )
