from __future__ import annotations

from dataclasses import dataclass, fields, replace

NOT_RESIDENT = -1


@dataclass
class ProcessDescriptor:
    pid: int
    program_name: str
    # Image size in Mb; the allocator needs a partition at least this large.
    size: int
    # -1 means the process does not currently hold a partition.
    partition_number: int = NOT_RESIDENT
    # Carried verbatim through fork/exec; never branched on.
    parent_pid: int = -1

    @property
    def is_resident(self) -> bool:
        return self.partition_number != NOT_RESIDENT

    def snapshot(self) -> ProcessDescriptor:
        return replace(self)

    def restore(self, saved: ProcessDescriptor) -> None:
        """Overwrite this descriptor in place with a saved snapshot's fields."""
        for f in fields(self):
            setattr(self, f.name, getattr(saved, f.name))


@dataclass
class PidAllocator:
    """
    Hands out process identifiers. Identifiers are never reused.
    Owned by the top-level simulator so recursion stays free of global state.
    """

    next_pid: int = 1

    def allocate(self) -> int:
        pid = self.next_pid
        self.next_pid += 1
        return pid


def init_process() -> ProcessDescriptor:
    """The bootstrap process every run starts from."""
    return ProcessDescriptor(pid=0, program_name="init", size=1)
