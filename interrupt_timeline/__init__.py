"""
Interrupt Timeline Simulator

Core modules:
- engine: recursive trace simulator (CPU, SYSCALL, END_IO, FORK, EXEC)
- branches: IF_CHILD / IF_PARENT / ENDIF scanning for FORK
- models: process descriptors and pid allocation
- reporting: execution log and PCB table rendering (no behavior changes)
"""
