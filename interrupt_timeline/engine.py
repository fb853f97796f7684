from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Mapping, Sequence

from interrupt_timeline.branches import find_parent_resume, split_fork_branches
from interrupt_timeline.device import DeviceTimeSplit, make_splitter
from interrupt_timeline.errors import BranchMarkerError, UnknownProgramError, VectorIndexError
from interrupt_timeline.events import (
    ExecutionStep,
    SimulationResult,
    StatusSnapshot,
    StepKind,
    TraceOutcome,
)
from interrupt_timeline.instructions import Activity, Instruction
from interrupt_timeline.memory import MemoryManager
from interrupt_timeline.models import NOT_RESIDENT, PidAllocator, ProcessDescriptor

logger = logging.getLogger(__name__)

FORK_VECTOR = 2
EXEC_VECTOR = 3
# Context save inside FORK/EXEC interrupts; SYSCALL/END_IO save in 4.
SWITCH_CONTEXT_SAVE = 10
IO_CONTEXT_SAVE = 4
VECTOR_SIZE = 2
LOAD_MS_PER_MB = 15
PARTITION_MARK_MS = 3
PCB_UPDATE_MS = 6

SYSCALL_PHASES = ("Call device driver", "Perform device check", "Send device instruction")
END_IO_PHASES = ("store information in memory", "reset the io operation", "Send standby instruction")

ProgramLoader = Callable[[str], Sequence[Instruction]]


def lookup_program_size(name: str, catalog: Mapping[str, int]) -> int:
    try:
        return int(catalog[name])
    except KeyError as e:
        raise UnknownProgramError(f"program {name!r} is not in the external file catalog") from e


@dataclass
class _Frame:
    """
    Timeline of one simulate() invocation.
    Every step starts where the previous one ended.
    """

    now: int
    steps: list[ExecutionStep] = field(default_factory=list)
    statuses: list[StatusSnapshot] = field(default_factory=list)

    def log(self, duration: int, kind: StepKind, description: str) -> None:
        self.steps.append(ExecutionStep(self.now, int(duration), kind, description))
        self.now += int(duration)

    def snapshot(
            self,
            ins: Instruction,
            current: ProcessDescriptor,
            wait_queue: Sequence[ProcessDescriptor],
    ) -> None:
        self.statuses.append(
            StatusSnapshot(
                time=self.now,
                trace_line=str(ins),
                current=current.snapshot(),
                waiting=tuple(p.snapshot() for p in wait_queue),
            )
        )

    def splice(self, sub: SimulationResult) -> None:
        self.steps.extend(sub.steps)
        self.statuses.extend(sub.statuses)
        self.now = sub.end_time

    def result(self, outcome: TraceOutcome = TraceOutcome.EXHAUSTED) -> SimulationResult:
        return SimulationResult(tuple(self.steps), tuple(self.statuses), self.now, outcome)


class TraceSimulator:
    """
    Trace-driven timeline engine.

    simulate() walks one trace; FORK and EXEC build a derived trace and call
    simulate() recursively, splicing the nested logs and end time back in.
    The wait queue is the only structure shared between depths and is used as
    a stack: push before descending into a child, pop after it returns.
    """

    def __init__(
            self,
            vectors: Sequence[str],
            delays: Sequence[int],
            catalog: Mapping[str, int],
            memory: MemoryManager,
            program_loader: ProgramLoader,
            *,
            splitter: DeviceTimeSplit | None = None,
            pids: PidAllocator | None = None,
            strict_markers: bool = False,
    ) -> None:
        self.vectors = vectors
        self.delays = delays
        self.catalog = catalog
        self.memory = memory
        self.program_loader = program_loader
        self.splitter = splitter if splitter is not None else make_splitter()
        self.pids = pids if pids is not None else PidAllocator()
        self.strict_markers = strict_markers

    def simulate(
            self,
            trace: Sequence[Instruction],
            start_time: int,
            current: ProcessDescriptor,
            wait_queue: list[ProcessDescriptor],
    ) -> SimulationResult:
        frame = _Frame(now=int(start_time))
        idx = 0

        while idx < len(trace):
            ins = trace[idx]
            logger.debug("t=%d pid=%d %s", frame.now, current.pid, ins)

            if ins.activity == Activity.CPU:
                frame.log(ins.operand, StepKind.CPU_BURST, "CPU Burst")

            elif ins.activity == Activity.SYSCALL:
                self._io_interrupt(frame, ins.operand, SYSCALL_PHASES, fetch_isr=True)

            elif ins.activity == Activity.END_IO:
                self._io_interrupt(frame, ins.operand, END_IO_PHASES, fetch_isr=False)

            elif ins.activity == Activity.FORK:
                self._interrupt_prologue(frame, FORK_VECTOR, SWITCH_CONTEXT_SAVE)
                frame.log(ins.operand, StepKind.PCB_CLONE, "cloning the PCB")

                child = replace(current, pid=self.pids.allocate(), partition_number=NOT_RESIDENT)

                if not self.memory.allocate(child):
                    logger.warning("t=%d FORK failed for pid %d: no memory for child", frame.now, current.pid)
                    frame.log(0, StepKind.FORK_FAILED, "FORK failed: No memory for child process")
                    frame.log(1, StepKind.IRET, "IRET")
                    idx = self._resume_index(trace, idx, find_parent_resume(trace, idx))
                    continue

                logger.info("t=%d pid %d forked child pid %d", frame.now, current.pid, child.pid)
                parent = current
                wait_queue.append(parent.snapshot())
                current = child

                frame.log(0, StepKind.SCHEDULER, "scheduler called")
                frame.snapshot(ins, current, wait_queue)
                frame.log(1, StepKind.IRET, "IRET")

                branches = split_fork_branches(trace, idx)
                frame.splice(self.simulate(branches.child_trace, frame.now, current, wait_queue))

                # Same object the caller holds, so an enclosing EXEC frame sees its exit.
                parent.restore(wait_queue.pop())
                current = parent
                logger.info("t=%d pid %d resumed", frame.now, current.pid)
                idx = self._resume_index(trace, idx, branches.parent_resume)
                continue

            elif ins.activity == Activity.EXEC:
                self._interrupt_prologue(frame, EXEC_VECTOR, SWITCH_CONTEXT_SAVE)

                if current.is_resident:
                    self.memory.release(current)

                program = str(ins.argument)
                new_size = lookup_program_size(program, self.catalog)
                frame.log(ins.operand, StepKind.PROGRAM_SIZE, f"Program is {new_size} Mb large")

                current.program_name = program
                current.size = new_size
                current.partition_number = NOT_RESIDENT

                if not self.memory.allocate(current):
                    logger.warning("t=%d EXEC %s failed for pid %d", frame.now, program, current.pid)
                    frame.log(0, StepKind.EXEC_FAILED, f"EXEC failed: Memory allocation failed for {program}")
                    frame.snapshot(ins, current, wait_queue)
                    return frame.result(TraceOutcome.EXEC_FAILED)

                frame.log(new_size * LOAD_MS_PER_MB, StepKind.PROGRAM_LOAD, "loading program into memory")
                frame.log(PARTITION_MARK_MS, StepKind.PARTITION_MARK, "marking partition as occupied")
                frame.log(PCB_UPDATE_MS, StepKind.PCB_UPDATE, "updating PCB")
                frame.log(0, StepKind.SCHEDULER, "scheduler called")
                frame.log(1, StepKind.IRET, "IRET")
                frame.snapshot(ins, current, wait_queue)

                logger.info("t=%d pid %d exec %s", frame.now, current.pid, program)
                frame.splice(self.simulate(self.program_loader(program), frame.now, current, wait_queue))

                # The rest of this trace never runs.
                self._exit(current)
                return frame.result(TraceOutcome.REPLACED)

            # IF_PARENT / IF_CHILD / ENDIF have no timeline effect of their own.
            idx += 1

        self._exit(current)
        return frame.result()

    def _exit(self, current: ProcessDescriptor) -> None:
        if current.is_resident:
            self.memory.release(current)

    def _resume_index(self, trace: Sequence[Instruction], fork_index: int, marker: int | None) -> int:
        if marker is None:
            if self.strict_markers:
                raise BranchMarkerError(
                    f"FORK at trace index {fork_index} has no IF_PARENT or ENDIF to resume the parent at"
                )
            return len(trace)
        return marker + 1

    def _vector(self, vector: int) -> str:
        if not 0 <= vector < len(self.vectors):
            raise VectorIndexError(f"vector {vector} out of range (vector table has {len(self.vectors)} entries)")
        return self.vectors[vector]

    def _delay(self, vector: int) -> int:
        if not 0 <= vector < len(self.delays):
            raise VectorIndexError(f"vector {vector} out of range (device table has {len(self.delays)} entries)")
        return int(self.delays[vector])

    def _interrupt_prologue(self, frame: _Frame, vector: int, context_save: int) -> None:
        address = self._vector(vector)
        frame.log(1, StepKind.KERNEL_SWITCH, "switch to kernel mode")
        frame.log(context_save, StepKind.CONTEXT_SAVE, "context saved")
        frame.log(1, StepKind.VECTOR_LOOKUP, f"find vector {vector} in memory position 0x{vector * VECTOR_SIZE:04X}")
        frame.log(1, StepKind.ISR_ADDRESS, f"load address {address} into the PC")

    def _io_interrupt(
            self,
            frame: _Frame,
            vector: int,
            phases: tuple[str, str, str],
            *,
            fetch_isr: bool,
    ) -> None:
        address = self._vector(vector)
        total = self._delay(vector)

        frame.log(1, StepKind.KERNEL_SWITCH, "switch to kernel mode")
        frame.log(IO_CONTEXT_SAVE, StepKind.CONTEXT_SAVE, "context saved")
        frame.log(1, StepKind.VECTOR_LOOKUP, f"find vector {vector} in memory {address}")
        if fetch_isr:
            frame.log(1, StepKind.ISR_ADDRESS, "obtain ISR address")

        for label, duration in zip(phases, self.splitter.split(total)):
            frame.log(duration, StepKind.DEVICE_PHASE, label)

        frame.log(1, StepKind.IRET, "IRET")


def simulate_trace(
        trace: Sequence[Instruction],
        start_time: int,
        vectors: Sequence[str],
        delays: Sequence[int],
        catalog: Mapping[str, int],
        current: ProcessDescriptor,
        wait_queue: list[ProcessDescriptor],
        *,
        memory: MemoryManager,
        program_loader: ProgramLoader,
        splitter: DeviceTimeSplit | None = None,
        pids: PidAllocator | None = None,
        strict_markers: bool = False,
) -> SimulationResult:
    """Single-call form: build a simulator and run one trace through it."""
    sim = TraceSimulator(
        vectors,
        delays,
        catalog,
        memory,
        program_loader,
        splitter=splitter,
        pids=pids,
        strict_markers=strict_markers,
    )
    return sim.simulate(trace, start_time, current, wait_queue)
