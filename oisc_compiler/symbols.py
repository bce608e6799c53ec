"""
Symbol table and address allocation.

Memory layout (data store, 256 cells):

    $FF  255  ioPort      read = prompt for input, write = output
    $FE  254  NEG_ONE     constant -1
    $FD  253  TEMP_A      scratch
    $FC  252  TEMP_B      scratch
    $FB  251  TEMP_C      scratch
    $FA  250  ZERO        constant 0 (restored after every use)
    $F9  249  first variable
     ...      heap grows downward, at most MAX_VARIABLES cells
    $96  150  last variable

Program store: cells are handed out upward from address 0.  A cell must be
able to name its successor in 8 bits, so the last usable program cell is
254 and cell 255 is always empty (``JMP 255`` halts).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .numeric import is_decimal, is_literal

__all__ = [
    'IO_PORT', 'NEG_ONE', 'TEMP_A', 'TEMP_B', 'TEMP_C', 'ZERO',
    'HEAP_START', 'MAX_VARIABLES', 'PROGRAM_LIMIT', 'IO_PORT_NAME',
    'AllocationError', 'Variable', 'SymbolTable',
]

IO_PORT = 0xFF
NEG_ONE = 0xFE
TEMP_A = 0xFD
TEMP_B = 0xFC
TEMP_C = 0xFB
ZERO = 0xFA

HEAP_START = 0xF9
MAX_VARIABLES = 100

# First program address that may not hold an instruction.
PROGRAM_LIMIT = 0xFF

IO_PORT_NAME = "ioPort"


class AllocationError(Exception):
    """Raised when the variable heap or the program store is exhausted."""


@dataclass
class Variable:
    name: str
    address: int
    value: int              # initial 8-bit pattern loaded by DEF
    line: int = 0


@dataclass
class SymbolTable:
    """Name -> address map for one compiler session.

    The I/O cell is pre-registered under ``ioPort`` so programs can read and
    write it, but it never counts as a variable and cannot be redefined.
    """
    heap_start: int = HEAP_START
    max_variables: int = MAX_VARIABLES
    variables: Dict[str, Variable] = field(default_factory=dict)

    @property
    def heap_pointer(self) -> int:
        """Address the next new variable will receive."""
        return self.heap_start - len(self.variables)

    def __len__(self) -> int:
        return len(self.variables)

    def __contains__(self, name: str) -> bool:
        return name == IO_PORT_NAME or name in self.variables

    def __iter__(self) -> Iterator[Variable]:
        return iter(self.variables.values())

    def lookup(self, name: str) -> Optional[int]:
        if name == IO_PORT_NAME:
            return IO_PORT
        var = self.variables.get(name)
        return var.address if var else None

    @staticmethod
    def check_name(name: str):
        if name == IO_PORT_NAME:
            raise ValueError(f"{IO_PORT_NAME} is a reserved variable name")
        if is_decimal(name):
            raise ValueError(f"invalid variable name '{name}': "
                             f"must contain non-numeric characters")
        if is_literal(name):
            raise ValueError(f"invalid variable name '{name}': "
                             f"looks like a literal")

    def define(self, name: str, value: int, line: int = 0) -> Variable:
        """Create ``name`` or overwrite its initial value.

        Redefinition keeps the existing address.  Raises ValueError for a bad
        name and AllocationError when the heap is full.
        """
        self.check_name(name)
        old = self.variables.get(name)
        if old is not None:
            var = Variable(name, old.address, value, line)
        else:
            if len(self.variables) >= self.max_variables:
                raise AllocationError(
                    f"out of heap space, maximum of {self.max_variables} "
                    f"variables exceeded; cannot define '{name}'")
            var = Variable(name, self.heap_pointer, value, line)
        self.variables[name] = var
        return var
