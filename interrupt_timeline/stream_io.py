from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from interrupt_timeline.device import SPLIT_MODES
from interrupt_timeline.errors import InputFormatError, ProgramTraceNotFoundError
from interrupt_timeline.events import SimulationResult
from interrupt_timeline.instructions import Instruction, parse_trace
from interrupt_timeline.memory import DEFAULT_PARTITION_SIZES

logger = logging.getLogger(__name__)

EXECUTION_LOG_NAME = "execution.txt"
STATUS_LOG_NAME = "system_status.txt"


@dataclass(frozen=True)
class SimulationOptions:
    # "biased" reproduces the classic split (phases may be negative);
    # "clamped" keeps every phase >= 0.
    device_split: str = "biased"
    seed: int | None = None
    # Raise instead of treating the trace as exhausted when a FORK has no
    # IF_PARENT/ENDIF after it.
    strict_markers: bool = False


@dataclass(frozen=True)
class SystemConfig:
    vector_table: Path | None = None
    device_table: Path | None = None
    external_files: Path | None = None
    program_dir: Path | None = None
    partitions: tuple[int, ...] = DEFAULT_PARTITION_SIZES
    options: SimulationOptions = field(default_factory=SimulationOptions)


def _read_lines(path: Path) -> list[str]:
    if not path.exists():
        raise InputFormatError(f"file not found: {path}")
    if not path.is_file():
        raise InputFormatError(f"not a file: {path}")
    return path.read_text(encoding="utf-8").splitlines()


def load_trace(path: Path) -> tuple[Instruction, ...]:
    """Load a trace file, one instruction per line (blank lines ignored)."""
    try:
        trace = parse_trace(_read_lines(path))
    except InputFormatError as e:
        raise InputFormatError(f"{path}: {e}") from e
    logger.debug("loaded %d instructions from %s", len(trace), path)
    return trace


def load_vector_table(path: Path) -> list[str]:
    """One ISR address per line; the line number (from 0) is the vector."""
    vectors: list[str] = []
    for i, line in enumerate(_read_lines(path)):
        text = line.strip()
        if not text:
            continue
        if len(text.split()) != 1:
            raise InputFormatError(f"{path}: line {i + 1} must hold a single address")
        vectors.append(text)
    return vectors


def load_device_table(path: Path) -> list[int]:
    """One total device time per line; the line number (from 0) is the vector."""
    delays: list[int] = []
    for i, line in enumerate(_read_lines(path)):
        text = line.strip()
        if not text:
            continue
        try:
            value = int(text)
        except ValueError as e:
            raise InputFormatError(f"{path}: line {i + 1} must be an int (got {text!r})") from e
        if value < 0:
            raise InputFormatError(f"{path}: line {i + 1} must be >= 0 (got {value})")
        delays.append(value)
    return delays


def load_external_files(path: Path) -> dict[str, int]:
    """Lines of ``program_name, size`` (size in Mb)."""
    catalog: dict[str, int] = {}
    for i, line in enumerate(_read_lines(path)):
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split(",")]
        if len(parts) != 2 or not parts[0]:
            raise InputFormatError(f"{path}: line {i + 1} must look like 'program_name, size'")
        name, size_text = parts
        try:
            size = int(size_text)
        except ValueError as e:
            raise InputFormatError(f"{path}: line {i + 1} size must be an int (got {size_text!r})") from e
        if size < 0:
            raise InputFormatError(f"{path}: line {i + 1} size must be >= 0")
        if name in catalog:
            raise InputFormatError(f"{path}: duplicate program {name!r}")
        catalog[name] = size
    return catalog


@dataclass(frozen=True)
class ProgramDirectory:
    """Resolves an EXEC program name to ``<root>/<name><suffix>`` and loads it."""

    root: Path
    suffix: str = ".txt"

    def path_for(self, name: str) -> Path:
        return self.root / f"{name}{self.suffix}"

    def __call__(self, name: str) -> tuple[Instruction, ...]:
        path = self.path_for(name)
        if not path.is_file():
            raise ProgramTraceNotFoundError(f"no trace for program {name!r} (expected {path})")
        return load_trace(path)


def load_system_config(path: Path) -> SystemConfig:
    """Load and validate a JSON system config.

    Format (every key optional):
      {
        "vector_table": "vector_table.txt",
        "device_table": "device_table.txt",
        "external_files": "external_files.txt",
        "program_dir": ".",
        "partitions": [40, 25, 15, 10, 8, 2],
        "options": {"device_split": "biased", "seed": 7, "strict_markers": false}
      }

    Relative paths resolve against the config file's directory.
    """

    if not path.exists():
        raise InputFormatError(f"file not found: {path}")
    if not path.is_file():
        raise InputFormatError(f"not a file: {path}")

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InputFormatError(
            f"invalid JSON: {e.msg} (line {e.lineno}, col {e.colno})"
        ) from e

    if not isinstance(raw, dict):
        raise InputFormatError("root must be a JSON object")

    base = path.resolve().parent

    def _path(key: str) -> Path | None:
        value = raw.get(key, None)
        if value is None:
            return None
        if not isinstance(value, str) or not value.strip():
            raise InputFormatError(f"{key} must be a non-empty string when provided")
        p = Path(value)
        return p if p.is_absolute() else base / p

    partitions_raw = raw.get("partitions", None)
    partitions = DEFAULT_PARTITION_SIZES
    if partitions_raw is not None:
        if not isinstance(partitions_raw, list) or not partitions_raw:
            raise InputFormatError("partitions must be a non-empty array when provided")
        for i, size in enumerate(partitions_raw):
            if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
                raise InputFormatError(f"partitions[{i}] must be an int > 0")
        partitions = tuple(int(s) for s in partitions_raw)

    return SystemConfig(
        vector_table=_path("vector_table"),
        device_table=_path("device_table"),
        external_files=_path("external_files"),
        program_dir=_path("program_dir"),
        partitions=partitions,
        options=_parse_options(raw.get("options", {})),
    )


def _parse_options(raw: object) -> SimulationOptions:
    if raw is None:
        return SimulationOptions()
    if not isinstance(raw, dict):
        raise InputFormatError("options must be an object")

    device_split = raw.get("device_split", "biased")
    if device_split not in SPLIT_MODES:
        raise InputFormatError(f"options.device_split must be one of: {', '.join(SPLIT_MODES)}")

    seed = raw.get("seed", None)
    if seed is not None and (not isinstance(seed, int) or isinstance(seed, bool)):
        raise InputFormatError("options.seed must be an int when provided")

    strict_markers = raw.get("strict_markers", False)
    if not isinstance(strict_markers, bool):
        raise InputFormatError("options.strict_markers must be a boolean")

    return SimulationOptions(device_split=str(device_split), seed=seed, strict_markers=strict_markers)


def write_logs(out_dir: Path, execution_text: str, status_text: str) -> tuple[Path, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    exec_path = out_dir / EXECUTION_LOG_NAME
    status_path = out_dir / STATUS_LOG_NAME
    exec_path.write_text(execution_text, encoding="utf-8")
    status_path.write_text(status_text, encoding="utf-8")
    logger.info("wrote %s and %s", exec_path, status_path)
    return exec_path, status_path


def dump_timeline(result: SimulationResult) -> dict[str, Any]:
    """Return a JSON-serializable view of a simulation result."""
    steps: list[dict[str, Any]] = []
    for s in result.steps:
        d = asdict(s)
        d["kind"] = str(s.kind.value)
        steps.append(d)

    statuses: list[dict[str, Any]] = []
    for snap in result.statuses:
        statuses.append(
            {
                "time": snap.time,
                "trace_line": snap.trace_line,
                "current": asdict(snap.current),
                "waiting": [asdict(p) for p in snap.waiting],
            }
        )

    return {
        "end_time": result.end_time,
        "outcome": str(result.outcome.value),
        "steps": steps,
        "statuses": statuses,
    }
