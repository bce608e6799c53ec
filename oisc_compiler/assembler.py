"""
Block assembler for generated OISC code.

The code generator expands each source statement into a ``Block`` of
abstract instructions whose branch targets may be symbolic labels local to
that block.  The block is then placed at the session's program counter and
resolved in two passes, the same scheme a classic two-pass assembler uses:

  Pass 1: walk the block, give every instruction its address and record the
          address of every label.  A label after the last instruction names
          the cell following the block.
  Pass 2: build the final Instructions, replacing each label with its
          address and each "fall through" target with the successor cell.

Targets:
  None      fall through to the next cell (PC+1)
  int       absolute program address (already resolved by the caller)
  str       label defined in the same block
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Union

from .encoding import Instruction, InstrKind
from .symbols import ZERO

__all__ = ['AssemblerError', 'AsmOp', 'Block', 'assemble']

Target = Union[None, int, str]


class AssemblerError(Exception):
    """Raised for an inconsistent block (undefined or duplicate label)."""


@dataclass
class AsmOp:
    kind: InstrKind
    a: int
    b: int
    target: Target = None
    labels: List[str] = field(default_factory=list)


class Block:
    """Builder for one statement's worth of instructions."""

    def __init__(self):
        self.ops: List[AsmOp] = []
        self._pending: List[str] = []
        self.end_labels: List[str] = []

    def __len__(self) -> int:
        return len(self.ops)

    def label(self, name: str):
        """Attach ``name`` to the next instruction added."""
        self._pending.append(name)

    def _add(self, op: AsmOp):
        op.labels.extend(self._pending)
        self._pending = []
        self.ops.append(op)

    def subleq(self, a: int, b: int, target: Target = None):
        self._add(AsmOp(InstrKind.SUBLEQ, a, b, target))

    def load(self, value: int, dest: int):
        self._add(AsmOp(InstrKind.LOAD, value, dest))

    def clear(self, addr: int):
        """m(addr) = 0"""
        self.subleq(addr, addr)

    def jump(self, target: Target):
        """Unconditional branch: ZERO - ZERO is always <= 0."""
        self.subleq(ZERO, ZERO, target)

    def close(self) -> Block:
        """Move labels still pending onto the cell after the block."""
        self.end_labels.extend(self._pending)
        self._pending = []
        return self


def assemble(block: Block, origin: int) -> List[Instruction]:
    """Resolve a block placed at ``origin`` into concrete instructions."""
    block.close()

    # Pass 1: label addresses
    labels: Dict[str, int] = {}
    for i, op in enumerate(block.ops):
        for name in op.labels:
            if name in labels:
                raise AssemblerError(f"duplicate label '{name}'")
            labels[name] = origin + i
    for name in block.end_labels:
        if name in labels:
            raise AssemblerError(f"duplicate label '{name}'")
        labels[name] = origin + len(block.ops)

    # Pass 2: emit
    out: List[Instruction] = []
    for i, op in enumerate(block.ops):
        addr = origin + i
        target = _resolve(op.target, addr, labels)
        out.append(Instruction(op.kind, op.a, op.b, target))
    return out


def _resolve(target: Target, addr: int, labels: Dict[str, int]) -> int:
    if target is None:
        return addr + 1
    if isinstance(target, str):
        if target not in labels:
            raise AssemblerError(f"undefined label '{target}'")
        return labels[target]
    return target
