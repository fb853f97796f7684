from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from interrupt_timeline.models import ProcessDescriptor


class StepKind(str, Enum):
    """
    Vocabulary of execution-log steps.
    The description text is for humans; tests and tools key off the kind.
    """

    CPU_BURST = "CPU_BURST"
    KERNEL_SWITCH = "KERNEL_SWITCH"
    CONTEXT_SAVE = "CONTEXT_SAVE"
    VECTOR_LOOKUP = "VECTOR_LOOKUP"
    ISR_ADDRESS = "ISR_ADDRESS"
    DEVICE_PHASE = "DEVICE_PHASE"
    IRET = "IRET"
    PCB_CLONE = "PCB_CLONE"
    FORK_FAILED = "FORK_FAILED"
    SCHEDULER = "SCHEDULER"
    PROGRAM_SIZE = "PROGRAM_SIZE"
    EXEC_FAILED = "EXEC_FAILED"
    PROGRAM_LOAD = "PROGRAM_LOAD"
    PARTITION_MARK = "PARTITION_MARK"
    PCB_UPDATE = "PCB_UPDATE"


class TraceOutcome(str, Enum):
    EXHAUSTED = "EXHAUSTED"
    # EXEC handed control to another program's trace.
    REPLACED = "REPLACED"
    EXEC_FAILED = "EXEC_FAILED"


@dataclass(frozen=True, slots=True)
class ExecutionStep:
    """One execution-log line: starts at time, lasts duration."""

    time: int
    duration: int
    kind: StepKind
    description: str

    @property
    def end(self) -> int:
        return self.time + self.duration


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    """
    Process table at a scheduling point.
    Holds copies, so later mutation of live descriptors does not leak in.
    """

    time: int
    trace_line: str
    current: ProcessDescriptor
    waiting: tuple[ProcessDescriptor, ...]


@dataclass(frozen=True, slots=True)
class SimulationResult:
    steps: tuple[ExecutionStep, ...]
    statuses: tuple[StatusSnapshot, ...]
    end_time: int
    outcome: TraceOutcome = TraceOutcome.EXHAUSTED
