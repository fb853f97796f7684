from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from interrupt_timeline.device import SPLIT_MODES, make_splitter
from interrupt_timeline.engine import TraceSimulator
from interrupt_timeline.errors import InputFormatError, SimulationError
from interrupt_timeline.memory import FixedPartitionMemory
from interrupt_timeline.models import PidAllocator, init_process
from interrupt_timeline.reporting import (
    render_execution_log,
    render_external_files,
    render_status_log,
)
from interrupt_timeline.stream_io import (
    ProgramDirectory,
    SystemConfig,
    dump_timeline,
    load_device_table,
    load_external_files,
    load_system_config,
    load_trace,
    load_vector_table,
    write_logs,
)

logger = logging.getLogger("interrupt_timeline")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )


def _pick(flag: str | None, configured: Path | None, label: str) -> Path:
    if flag:
        return Path(flag)
    if configured is not None:
        return configured
    raise InputFormatError(f"no {label} given (use --{label} or set it in --config)")


def _load_config(args: argparse.Namespace) -> SystemConfig:
    if args.config:
        return load_system_config(Path(str(args.config)))
    return SystemConfig()


def _cmd_run(args: argparse.Namespace) -> int:
    _configure_logging(args.log_level)

    try:
        config = _load_config(args)
        trace_path = Path(str(args.trace))
        trace = load_trace(trace_path)
        vectors = load_vector_table(_pick(args.vectors, config.vector_table, "vectors"))
        delays = load_device_table(_pick(args.delays, config.device_table, "delays"))
        catalog = load_external_files(_pick(args.externals, config.external_files, "externals"))
    except InputFormatError as e:
        print(f"ERROR: invalid input: {e}", file=sys.stderr)
        return 2

    options = config.options
    seed = args.seed if args.seed is not None else options.seed
    split_mode = args.device_split or options.device_split
    strict = bool(args.strict_markers) or options.strict_markers

    if args.program_dir:
        program_dir = Path(str(args.program_dir))
    elif config.program_dir is not None:
        program_dir = config.program_dir
    else:
        program_dir = trace_path.resolve().parent

    memory = FixedPartitionMemory.from_sizes(config.partitions)
    simulator = TraceSimulator(
        vectors,
        delays,
        catalog,
        memory,
        ProgramDirectory(program_dir),
        splitter=make_splitter(split_mode, seed),
        pids=PidAllocator(),
        strict_markers=strict,
    )

    current = init_process()
    if not memory.allocate(current):
        logger.error("memory allocation failed for the init process")

    try:
        result = simulator.simulate(trace, 0, current, [])
    except SimulationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2
    except InputFormatError as e:
        print(f"ERROR: invalid program trace: {e}", file=sys.stderr)
        return 2

    execution_text = render_execution_log(result.steps)
    status_text = render_status_log(result.statuses)

    if args.stdout:
        sys.stdout.write(execution_text)
    else:
        exec_path, status_path = write_logs(Path(str(args.out_dir)), execution_text, status_text)
        print(f"{exec_path}\n{status_path}")

    if args.json_out:
        Path(str(args.json_out)).write_text(
            json.dumps(dump_timeline(result), indent=2) + "\n", encoding="utf-8"
        )

    logger.info("simulation ended at t=%d (%s)", result.end_time, result.outcome.value)
    return 0


def _cmd_programs(args: argparse.Namespace) -> int:
    _configure_logging(args.log_level)
    try:
        config = _load_config(args)
        catalog = load_external_files(_pick(args.externals, config.external_files, "externals"))
    except InputFormatError as e:
        print(f"ERROR: invalid input: {e}", file=sys.stderr)
        return 2
    sys.stdout.write(render_external_files(catalog))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="interrupt_timeline",
        description=(
            "Interrupt Timeline Simulator.\n"
            "\n"
            "Replays a process trace (CPU, SYSCALL, END_IO, FORK, EXEC) and writes\n"
            "the execution log and system status snapshots."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", type=str, help="JSON system config (table paths, partitions, options).")
    common.add_argument("--externals", type=str, help="External files table: 'program_name, size' per line.")
    common.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="WARNING",
        help="Logging level (logs go to stderr).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", parents=[common], help="Simulate a trace and write the logs.")
    run.add_argument("trace", type=str, help="Trace file of the init process.")
    run.add_argument("--vectors", type=str, help="Vector table: one ISR address per line.")
    run.add_argument("--delays", type=str, help="Device table: one total device time per line.")
    run.add_argument(
        "--program-dir",
        type=str,
        default=None,
        help="Directory holding <program>.txt traces for EXEC (default: the trace's directory).",
    )
    run.add_argument("--out-dir", type=str, default=".", help="Where execution.txt and system_status.txt go.")
    run.add_argument("--seed", type=int, default=None, help="Seed for the device-time split.")
    run.add_argument(
        "--device-split",
        choices=SPLIT_MODES,
        default=None,
        help="biased: classic split (phases may be negative); clamped: every phase >= 0.",
    )
    run.add_argument(
        "--strict-markers",
        action="store_true",
        help="Fail when a FORK has no IF_PARENT/ENDIF instead of ending the parent's trace.",
    )
    run.add_argument("--json-out", type=str, default=None, help="Also dump the timeline as JSON.")
    run.add_argument("--stdout", action="store_true", help="Print the execution log instead of writing files.")
    run.set_defaults(func=_cmd_run)

    programs = sub.add_parser("programs", parents=[common], help="List the external files catalog.")
    programs.set_defaults(func=_cmd_programs)

    return parser


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
