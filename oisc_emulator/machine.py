"""
OISC Virtual Machine — fetch / decode / execute loop

Execution model:
  1. Fetch the cell at PC (missing or all-zero cell = empty, PC += 1)
  2. LOADIM a, b, c:  m(b) = a;            PC = c
     SUBLEQ a, b, c:  m(b) = m(b) - m(a);  PC = c if m(b) <= 0 else PC + 1
  3. Stop when PC reaches 256

There is no halt instruction.  A program that never leaves the address
space runs forever; that is a legitimate program, not a machine error, so
``run()`` only stops early when the caller passes ``max_steps``.

SUBLEQ overflow follows the FPGA implementation, not modulo-256 wrap:
a result below -128 has 255 added, a result above 127 has 255 subtracted.
"""

import collections
import enum
import logging
from pathlib import Path
from typing import Callable, Deque, Dict, Mapping, Optional, Union

from oisc_compiler.encoding import EMPTY, Instruction, disassemble, load_image
from oisc_compiler.numeric import is_decimal, signed_byte, decode_signed

from .memory import Memory, UninitializedReadError

log = logging.getLogger(__name__)


class MachineState(enum.Enum):
    IDLE = 'IDLE'
    RUNNING = 'RUNNING'
    HALTED = 'HALTED'


class StopReason(enum.Enum):
    HALT = 'HALT'                # PC left the address space
    STEP_LIMIT = 'STEP_LIMIT'    # caller-imposed max_steps reached


def correct_overflow(value: int) -> int:
    """Fold an out-of-range SUBLEQ result back into 8 bits (+/-255)."""
    if value < -128:
        return value + 255
    if value > 127:
        return value - 255
    return value


# ──────────────────────────────────────────────
# Default I/O port handlers
# ──────────────────────────────────────────────

def console_input(prompt: str = "ioPort> ") -> int:
    """Block until the user types a number; saturates to [-127, 127]."""
    while True:
        text = input(prompt).strip()
        if not text:
            print("You have entered an empty string, please reenter.")
        elif not is_decimal(text):
            print(f"'{text}' is not a decimal number, please reenter.")
        else:
            return decode_signed(signed_byte(int(text)))


def console_output(value: int):
    print(f"ioPort: {value}")


class Machine:
    """OISC virtual machine.

    Usage:
        vm = Machine()
        vm.load_image('compiled.mif')
        vm.run()
        print(vm.mem.snapshot())
    """

    MAX_PC = 256
    # Trace keeps only the most recent instructions.
    TRACE_LIMIT = 10000

    def __init__(self, program: Optional[Mapping[int, Instruction]] = None,
                 read_fn: Optional[Callable[[], int]] = None,
                 write_fn: Optional[Callable[[int], None]] = None):
        self.program: Dict[int, Instruction] = dict(program or {})
        self.mem = Memory(read_fn=read_fn or console_input,
                          write_fn=write_fn or console_output)
        self.pc = 0
        self.steps = 0
        self.state = MachineState.IDLE

        self._trace = False
        self._trace_output: Deque[str] = collections.deque(maxlen=self.TRACE_LIMIT)

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def load_program(self, program: Mapping[int, Instruction]):
        self.program = dict(program)
        self.reset()

    def load_image(self, path: Union[str, Path]) -> int:
        """Replace the program store with an image file.

        The old program is dropped first, so a malformed image leaves the
        store empty.  Returns the number of records read.
        """
        self.program = {}
        self.reset()
        program = load_image(path)
        self.program = program
        return len(program)

    def reset(self):
        """Clear data memory and return to PC 0."""
        self.mem.clear()
        self.pc = 0
        self.steps = 0
        self.state = MachineState.IDLE
        self._trace_output.clear()

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def fetch(self, addr: Optional[int] = None) -> Instruction:
        return self.program.get(self.pc if addr is None else addr, EMPTY)

    @property
    def halted(self) -> bool:
        return self.pc >= self.MAX_PC

    def step(self) -> Optional[StopReason]:
        """Execute one cell.  Returns StopReason.HALT once PC >= 256."""
        if self.halted:
            self.state = MachineState.HALTED
            return StopReason.HALT

        self.state = MachineState.RUNNING
        pc = self.pc
        instr = self.fetch()

        if instr.is_empty:
            self.pc += 1
        else:
            if self._trace:
                self._trace_output.append(f"{pc:3d}: {disassemble(instr)}")
            try:
                self._execute(instr)
            except UninitializedReadError as e:
                self.state = MachineState.HALTED
                log.error("pc %d: read of uninitialized address %d", pc, e.address)
                raise UninitializedReadError(e.address, pc) from None
            self.steps += 1

        if self.halted:
            self.state = MachineState.HALTED
            log.info("halted after %d instructions", self.steps)
            return StopReason.HALT
        return None

    def _execute(self, instr: Instruction):
        if instr.is_load:
            self.mem.write(instr.b, instr.a)
            self.pc = instr.c
            return

        subtrahend = self.mem.read(instr.a)
        result = correct_overflow(self.mem.read(instr.b) - subtrahend)
        self.mem.write(instr.b, result)
        self.pc = instr.c if result <= 0 else self.pc + 1

    def run(self, max_steps: Optional[int] = None) -> StopReason:
        """Run the program from PC 0 with fresh data memory.

        Args:
            max_steps: stop after this many executed instructions
                       (None = run until PC leaves the address space)
        """
        self.reset()
        while True:
            reason = self.step()
            if reason is not None:
                return reason
            if max_steps is not None and self.steps >= max_steps:
                log.info("step limit %d reached at pc %d", max_steps, self.pc)
                return StopReason.STEP_LIMIT

    def preload(self) -> int:
        """Execute only the leading LOADIM cells (the data segment).

        Stops at the first cell that is not a load, including an empty one.
        Returns the number of loads executed.
        """
        self.reset()
        count = 0
        while not self.halted:
            instr = self.fetch()
            if not instr.is_load:
                break
            self._execute(instr)
            count += 1
        log.info("preload executed %d load instructions", count)
        return count

    # ══════════════════════════════════════════════
    # Trace
    # ══════════════════════════════════════════════

    def enable_trace(self, enable: bool = True):
        self._trace = enable

    def get_trace(self) -> str:
        """The last TRACE_LIMIT executed instructions, oldest first."""
        return '\n'.join(self._trace_output)


# ──────────────────────────────────────────────
# Functional API
# ──────────────────────────────────────────────

def run(program: Mapping[int, Instruction],
        read_fn: Optional[Callable[[], int]] = None,
        write_fn: Optional[Callable[[int], None]] = None,
        max_steps: Optional[int] = None) -> Dict[int, int]:
    """Run a program store and return the resulting data store."""
    vm = Machine(program, read_fn, write_fn)
    vm.run(max_steps)
    return vm.mem.snapshot()


def preload(program: Mapping[int, Instruction]) -> Dict[int, int]:
    """Materialise a program's static data and return the data store."""
    vm = Machine(program)
    vm.preload()
    return vm.mem.snapshot()
