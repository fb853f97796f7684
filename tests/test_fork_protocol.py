from __future__ import annotations

import pytest

from interrupt_timeline.errors import BranchMarkerError
from interrupt_timeline.events import StepKind
from interrupt_timeline.memory import FixedPartitionMemory
from interrupt_timeline.models import PidAllocator, ProcessDescriptor
from tests._support.trace_helpers import (
    Programs,
    ScriptedMemory,
    assert_contiguous,
    kinds,
    make_simulator,
    resident_init,
    trace,
)

FORK_PROLOGUE = [
    StepKind.KERNEL_SWITCH,
    StepKind.CONTEXT_SAVE,
    StepKind.VECTOR_LOOKUP,
    StepKind.ISR_ADDRESS,
    StepKind.PCB_CLONE,
]


def test_parent_resumes_at_if_parent_after_empty_child() -> None:
    memory = FixedPartitionMemory.from_sizes()
    sim = make_simulator(memory=memory)
    current = resident_init(memory)
    wait_queue: list[ProcessDescriptor] = []

    result = sim.simulate(trace("FORK,3", "IF_PARENT", "CPU,1", "ENDIF"), 0, current, wait_queue)

    assert kinds(result.steps) == FORK_PROLOGUE + [
        StepKind.SCHEDULER,
        StepKind.IRET,
        StepKind.CPU_BURST,
    ]
    # kernel 1 + context 10 + vector 1 + address 1 + clone 3 + IRET 1 + CPU 1
    assert result.end_time == 18
    assert result.steps[2].description == "find vector 2 in memory position 0x0004"
    assert result.steps[-1].time == 17
    assert_contiguous(result.steps, 0)

    assert len(result.statuses) == 1
    snap = result.statuses[0]
    assert snap.time == 16
    assert snap.trace_line == "FORK,3"
    assert snap.current.pid == 1
    assert [p.pid for p in snap.waiting] == [0]

    assert wait_queue == []
    assert all(occupant == "empty" for occupant in memory.occupancy().values())


def test_child_runs_its_region_then_parent_runs_its_own() -> None:
    memory = ScriptedMemory()
    programs = Programs({"program2": ["CPU, 4"]})
    sim = make_simulator(memory=memory, programs=programs)
    current = resident_init(memory)

    result = sim.simulate(
        trace(
            "FORK, 2",
            "IF_CHILD",
            "CPU, 20",
            "IF_PARENT",
            "EXEC program2, 1",
            "ENDIF",
        ),
        0,
        current,
        [],
    )

    bursts = [s for s in result.steps if s.kind == StepKind.CPU_BURST]
    assert [s.duration for s in bursts] == [20, 4]

    # Child snapshot at the fork, then the parent (restored) at its EXEC.
    fork_snap, exec_snap = result.statuses
    assert fork_snap.current.pid == 1
    assert [p.pid for p in fork_snap.waiting] == [0]
    assert exec_snap.current.pid == 0
    assert exec_snap.current.program_name == "program2"
    assert exec_snap.waiting == ()

    # Child exited before the parent moved on.
    assert memory.released[0] == 1


def test_child_gets_fresh_pid_and_copies_opaque_fields() -> None:
    memory = FixedPartitionMemory.from_sizes()
    sim = make_simulator(memory=memory)
    current = ProcessDescriptor(pid=0, program_name="init", size=1, parent_pid=-7)
    assert memory.allocate(current)

    result = sim.simulate(trace("FORK, 1", "IF_PARENT"), 0, current, [])

    child = result.statuses[0].current
    assert child.pid == 1
    assert child.parent_pid == -7
    assert child.program_name == "init"
    assert child.size == 1
    assert child.partition_number == 5
    assert current.pid == 0


def test_nested_forks_keep_stack_discipline_and_unique_pids() -> None:
    memory = FixedPartitionMemory.from_sizes()
    pids = PidAllocator()
    sim = make_simulator(memory=memory, pids=pids)
    current = resident_init(memory)
    ancestor = ProcessDescriptor(pid=99, program_name="shell", size=1)
    wait_queue = [ancestor]

    # The first child also runs the second FORK (common code after ENDIF).
    result = sim.simulate(trace("FORK, 1", "ENDIF", "FORK, 1", "ENDIF"), 0, current, wait_queue)

    observed = [(s.current.pid, [p.pid for p in s.waiting]) for s in result.statuses]
    assert observed == [
        (1, [99, 0]),
        (2, [99, 0, 1]),
        (3, [99, 0]),
    ]
    assert pids.next_pid == 4
    assert wait_queue == [ancestor]
    assert wait_queue[0] is ancestor


def test_fork_failure_resumes_parent_at_if_parent() -> None:
    memory = ScriptedMemory(script=[True, False])
    pids = PidAllocator()
    sim = make_simulator(memory=memory, pids=pids)
    current = resident_init(memory)
    wait_queue: list[ProcessDescriptor] = []

    result = sim.simulate(
        trace("FORK, 3", "IF_CHILD", "CPU, 100", "IF_PARENT", "CPU, 7", "ENDIF", "CPU, 1"),
        0,
        current,
        wait_queue,
    )

    assert kinds(result.steps) == FORK_PROLOGUE + [
        StepKind.FORK_FAILED,
        StepKind.IRET,
        StepKind.CPU_BURST,
        StepKind.CPU_BURST,
    ]
    assert result.steps[5].description == "FORK failed: No memory for child process"
    assert [s.duration for s in result.steps if s.kind == StepKind.CPU_BURST] == [7, 1]
    assert result.end_time == 25
    assert result.statuses == ()
    assert wait_queue == []
    assert current.pid == 0
    # The failed child's pid is burned, never reused.
    assert pids.next_pid == 2
    assert memory.allocated == [0]
    assert memory.released == [0]


def test_fork_failure_without_if_parent_resumes_after_endif() -> None:
    memory = ScriptedMemory(script=[False])
    sim = make_simulator(memory=memory)
    current = ProcessDescriptor(pid=0, program_name="init", size=1)

    result = sim.simulate(trace("FORK, 3", "IF_CHILD", "CPU, 100", "ENDIF", "CPU, 2"), 0, current, [])

    assert [s.duration for s in result.steps if s.kind == StepKind.CPU_BURST] == [2]


def test_fork_failure_without_markers_ends_the_trace() -> None:
    memory = ScriptedMemory(script=[False])
    sim = make_simulator(memory=memory)
    current = ProcessDescriptor(pid=0, program_name="init", size=1)

    result = sim.simulate(trace("FORK, 3", "CPU, 100"), 0, current, [])

    assert result.steps[-1].kind == StepKind.IRET
    assert StepKind.CPU_BURST not in kinds(result.steps)
    assert result.end_time == 17


def test_strict_markers_turn_missing_markers_into_an_error() -> None:
    memory = ScriptedMemory(script=[False])
    sim = make_simulator(memory=memory, strict_markers=True)
    current = ProcessDescriptor(pid=0, program_name="init", size=1)

    with pytest.raises(BranchMarkerError):
        sim.simulate(trace("FORK, 3", "CPU, 100"), 0, current, [])
