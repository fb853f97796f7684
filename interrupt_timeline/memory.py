from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable

from interrupt_timeline.errors import PartitionError
from interrupt_timeline.models import NOT_RESIDENT, ProcessDescriptor

logger = logging.getLogger(__name__)

DEFAULT_PARTITION_SIZES: tuple[int, ...] = (40, 25, 15, 10, 8, 2)
EMPTY = "empty"


class MemoryManager(ABC):
    """
    Partition allocator used by the engine.
    allocate() may fail at any call site; the engine never touches partitions directly.
    """

    @abstractmethod
    def allocate(self, process: ProcessDescriptor) -> bool: ...

    @abstractmethod
    def release(self, process: ProcessDescriptor) -> None: ...


@dataclass(slots=True)
class MemoryPartition:
    number: int
    size: int
    occupant: str = EMPTY

    @property
    def is_free(self) -> bool:
        return self.occupant == EMPTY


@dataclass
class FixedPartitionMemory(MemoryManager):
    """
    Fixed partitions numbered from 1.

    Allocation scans from the last partition towards the first and takes the
    first free one that is large enough, so with the default layout (sizes
    descending) the smallest fitting partition wins.
    """

    partitions: list[MemoryPartition] = field(default_factory=list)

    @classmethod
    def from_sizes(cls, sizes: Iterable[int] = DEFAULT_PARTITION_SIZES) -> FixedPartitionMemory:
        return cls([MemoryPartition(number=i + 1, size=int(s)) for i, s in enumerate(sizes)])

    def allocate(self, process: ProcessDescriptor) -> bool:
        for part in reversed(self.partitions):
            if part.is_free and part.size >= process.size:
                part.occupant = process.program_name
                process.partition_number = part.number
                logger.info(
                    "pid %d (%s, %d Mb) -> partition %d",
                    process.pid,
                    process.program_name,
                    process.size,
                    part.number,
                )
                return True
        logger.warning(
            "no free partition for pid %d (%s, %d Mb)",
            process.pid,
            process.program_name,
            process.size,
        )
        return False

    def release(self, process: ProcessDescriptor) -> None:
        if process.partition_number == NOT_RESIDENT:
            raise PartitionError(f"pid {process.pid} does not hold a partition")
        part = self._partition(process.partition_number)
        logger.info("pid %d released partition %d", process.pid, part.number)
        part.occupant = EMPTY
        process.partition_number = NOT_RESIDENT

    def occupancy(self) -> dict[int, str]:
        return {p.number: p.occupant for p in self.partitions}

    def _partition(self, number: int) -> MemoryPartition:
        for part in self.partitions:
            if part.number == number:
                return part
        raise PartitionError(f"unknown partition {number}")
