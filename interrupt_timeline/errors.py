from __future__ import annotations


class InputFormatError(ValueError):
    """Raised when a trace line, table file, or config fails validation."""


class SimulationError(RuntimeError):
    """Base class for faults raised while a trace is being simulated."""


class VectorIndexError(SimulationError):
    """Raised when an instruction refers to a vector outside the loaded tables."""


class BranchMarkerError(SimulationError):
    """Raised when a FORK has no IF_PARENT/ENDIF to resume the parent at (strict mode)."""


class UnknownProgramError(SimulationError):
    """Raised when EXEC names a program that is not in the external file catalog."""


class ProgramTraceNotFoundError(SimulationError):
    """Raised when EXEC names a program whose trace file cannot be found."""


class PartitionError(SimulationError):
    """Raised on an invalid partition operation (e.g. releasing a non-resident process)."""
