"""
Instruction encoding and memory image (.mif) format.

One program cell is 25 bits wide:

    bit 24      bits 23-16   bits 15-8   bits 7-0
    ┌──────┬────────────┬───────────┬───────────┐
    │ tag  │     A      │     B     │     C     │
    └──────┴────────────┴───────────┴───────────┘

    tag = 0  SUBLEQ   m(B) -= m(A); if m(B) <= 0 goto C else goto PC+1
    tag = 1  LOADIM   m(B)  = A (signed immediate); goto C

An all-zero cell is the "empty" sentinel: no instruction, advance to PC+1.

Image layout (readable by the FPGA toolchain, must be reproduced exactly):

    DEPTH = 256;
    WIDTH = 25;
    ADDRESS_RADIX = BIN;
    DATA_RADIX = BIN;
    CONTENT
    BEGIN
    00000000 : 1000000001111101000000001 ;
    ...                                      (one record per address 0-255)
    END;
"""

from __future__ import annotations
import enum
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Union

from .numeric import decode_signed, to_bits

__all__ = [
    'InstrKind', 'Instruction', 'EMPTY', 'ImageFormatError',
    'DEPTH', 'WIDTH', 'encode', 'decode', 'disassemble',
    'serialize_image', 'parse_image', 'load_image', 'write_image', 'populated',
]

log = logging.getLogger(__name__)

DEPTH = 256
WIDTH = 25
ADDRESS_WIDTH = 8

HEADER = (
    f"DEPTH = {DEPTH};",
    f"WIDTH = {WIDTH};",
    "ADDRESS_RADIX = BIN;",
    "DATA_RADIX = BIN;",
    "CONTENT",
    "BEGIN",
)
TERMINATOR = "END;"

_HEADER_RE = re.compile(r'^([A-Z_]+)\s*=\s*([A-Za-z0-9]+)\s*;$')


class ImageFormatError(Exception):
    """Raised when a memory image is structurally malformed."""
    def __init__(self, message: str, line_num: int = 0):
        self.line_num = line_num
        super().__init__(f"Line {line_num}: {message}" if line_num else message)


class InstrKind(enum.Enum):
    SUBLEQ = 0
    LOAD = 1


@dataclass(frozen=True)
class Instruction:
    """One decoded program cell.

    For LOAD, ``a`` is the signed immediate (-128..127).  For SUBLEQ all
    three operands are unsigned addresses.
    """
    kind: InstrKind
    a: int
    b: int
    c: int

    @classmethod
    def subleq(cls, a: int, b: int, c: int) -> Instruction:
        return cls(InstrKind.SUBLEQ, a, b, c)

    @classmethod
    def load(cls, value: int, dest: int, nxt: int) -> Instruction:
        return cls(InstrKind.LOAD, value, dest, nxt)

    @property
    def is_load(self) -> bool:
        return self.kind is InstrKind.LOAD

    @property
    def is_empty(self) -> bool:
        return (self.kind is InstrKind.SUBLEQ
                and self.a == 0 and self.b == 0 and self.c == 0)

    def __str__(self) -> str:
        return disassemble(self)


EMPTY = Instruction.subleq(0, 0, 0)


# ──────────────────────────────────────────────
# Bit-level encode / decode
# ──────────────────────────────────────────────

def encode(instr: Instruction) -> str:
    """Instruction -> 25-character bit string."""
    return (str(instr.kind.value)
            + to_bits(instr.a)
            + to_bits(instr.b)
            + to_bits(instr.c))


def decode(bits: str) -> Instruction:
    """25-character bit string -> Instruction."""
    if len(bits) != WIDTH:
        raise ImageFormatError(f"expected {WIDTH} data bits, got {len(bits)}")
    if any(ch not in '01' for ch in bits):
        raise ImageFormatError(f"non-binary data field: '{bits}'")

    a = int(bits[1:9], 2)
    b = int(bits[9:17], 2)
    c = int(bits[17:25], 2)
    if bits[0] == '1':
        return Instruction.load(decode_signed(a), b, c)
    return Instruction.subleq(a, b, c)


def disassemble(instr: Instruction) -> str:
    """Human-readable form of one cell."""
    if instr.is_load:
        head = f"loadim {instr.a:6d}"
    else:
        head = f"subleq m({instr.a:3d})"
    return f"{head}, m({instr.b:3d}), {instr.c:3d}"


# ──────────────────────────────────────────────
# Image text
# ──────────────────────────────────────────────

def serialize_image(program: Mapping[int, Instruction]) -> str:
    """Program store -> complete image text covering all 256 addresses."""
    lines: List[str] = list(HEADER)
    for addr in range(DEPTH):
        instr = program.get(addr, EMPTY)
        lines.append(f"{to_bits(addr, ADDRESS_WIDTH)} : {encode(instr)} ;")
    lines.append(TERMINATOR)
    return "\n".join(lines) + "\n"


def write_image(program: Mapping[int, Instruction],
                path: Union[str, Path]) -> str:
    text = serialize_image(program)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return text


def _check_header(line: str, line_num: int):
    """Validate DEPTH / WIDTH / radix declarations if they are present."""
    m = _HEADER_RE.match(line)
    if not m:
        return
    key, value = m.group(1), m.group(2)
    expected = {
        'DEPTH': str(DEPTH),
        'WIDTH': str(WIDTH),
        'ADDRESS_RADIX': 'BIN',
        'DATA_RADIX': 'BIN',
    }.get(key)
    if expected is not None and value != expected:
        raise ImageFormatError(f"{key} must be {expected}, got {value}", line_num)


def _parse_record(line: str, line_num: int) -> tuple:
    """Parse 'address : bits ;' into (address, Instruction)."""
    fields = line.split(':')
    if len(fields) != 2:
        raise ImageFormatError(f"expected 'address : data ;', got '{line}'",
                               line_num)
    addr_text = fields[0].strip()
    data_part = fields[1]
    if ';' not in data_part:
        raise ImageFormatError("record is missing ';'", line_num)
    data_text, trailer = data_part.split(';', 1)
    data_text = data_text.strip()
    if trailer.strip():
        raise ImageFormatError(f"unexpected text after ';': '{trailer.strip()}'",
                               line_num)

    if len(addr_text) != ADDRESS_WIDTH or any(ch not in '01' for ch in addr_text):
        raise ImageFormatError(f"bad address field: '{addr_text}'", line_num)
    try:
        instr = decode(data_text)
    except ImageFormatError as e:
        raise ImageFormatError(str(e), line_num) from None
    return int(addr_text, 2), instr


def parse_image(text: str) -> Dict[int, Instruction]:
    """Image text -> program store.

    All-or-nothing: any structural problem raises ImageFormatError and no
    partial result is returned.
    """
    lines = text.splitlines()
    i = 0

    # Header up to and including BEGIN
    while i < len(lines) and lines[i].strip() != "BEGIN":
        _check_header(lines[i].strip(), i + 1)
        i += 1
    if i == len(lines):
        raise ImageFormatError("missing BEGIN line")
    i += 1

    program: Dict[int, Instruction] = {}
    while True:
        if i == len(lines):
            raise ImageFormatError(f"missing {TERMINATOR} terminator")
        line = lines[i].strip()
        i += 1
        if line == TERMINATOR:
            break
        if not line:
            continue
        addr, instr = _parse_record(line, i)
        if addr in program:
            raise ImageFormatError(f"duplicate record for address {addr}", i)
        program[addr] = instr

    return program


def load_image(path: Union[str, Path]) -> Dict[int, Instruction]:
    """Read and parse an image file."""
    text = Path(path).read_text(encoding="utf-8")
    program = parse_image(text)
    log.info("loaded %d records from %s", len(program), path)
    return program


def populated(program: Mapping[int, Instruction]) -> Iterable[int]:
    """Addresses holding a non-empty cell, in increasing order."""
    return [addr for addr in sorted(program) if not program[addr].is_empty]
