# OISC Virtual Machine — executes .mif images produced by oisc_compiler
#
# Harvard layout: the program store (256 x 25-bit cells, read-only while
# running) and the data store (256 x signed 8-bit cells, $FF = I/O port)
# are separate address spaces.

from .memory import Memory, UninitializedReadError
from .machine import (
    Machine, MachineState, StopReason,
    correct_overflow, console_input, console_output, run, preload,
)
