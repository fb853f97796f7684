from __future__ import annotations

from typing import Iterable, Mapping

from interrupt_timeline.events import ExecutionStep, StatusSnapshot
from interrupt_timeline.models import ProcessDescriptor

_COLUMNS = (
    ("PID", 5),
    ("program name", 14),
    ("partition number", 18),
    ("size", 6),
    ("state", 9),
)


def format_step(step: ExecutionStep) -> str:
    return f"{step.time}, {step.duration}, {step.description}"


def render_execution_log(steps: Iterable[ExecutionStep]) -> str:
    return "".join(format_step(s) + "\n" for s in steps)


def _rule() -> str:
    return "+" + "+".join("-" * (w + 2) for _, w in _COLUMNS) + "+"


def _row(values: Iterable[object]) -> str:
    cells = [f" {str(v).rjust(w)} " for v, (_, w) in zip(values, _COLUMNS)]
    return "|" + "|".join(cells) + "|"


def _process_row(p: ProcessDescriptor, state: str) -> str:
    return _row((p.pid, p.program_name, p.partition_number, p.size, state))


def format_status(snapshot: StatusSnapshot) -> str:
    """
    PCB table for one snapshot: the running process first, then the wait
    queue from the oldest suspended parent to the most recent.
    """
    lines = [_rule(), _row(name for name, _ in _COLUMNS), _rule()]
    lines.append(_process_row(snapshot.current, "running"))
    for p in snapshot.waiting:
        lines.append(_process_row(p, "waiting"))
    lines.append(_rule())
    return "\n".join(lines)


def render_status_log(snapshots: Iterable[StatusSnapshot]) -> str:
    out: list[str] = []
    for snap in snapshots:
        out.append(f"time: {snap.time}; current trace: {snap.trace_line}")
        out.append(format_status(snap))
        out.append("")
    return "\n".join(out)


def render_external_files(catalog: Mapping[str, int]) -> str:
    if not catalog:
        return "(no external files)\n"
    width = max(len(name) for name in catalog)
    out = ["External files:"]
    for name, size in catalog.items():
        out.append(f"  {name.ljust(width)}  {size} Mb")
    return "\n".join(out) + "\n"
