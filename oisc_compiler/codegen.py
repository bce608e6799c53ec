"""
OISC Code Generator.

Translates source statements into LOADIM / SUBLEQ cells.

Register usage convention (see symbols.py for addresses):
  - ZERO:    holds 0 between statements; used as an accumulator for
             negated values inside a statement and cleared again after
  - NEG_ONE: constant -1, used for +1 steps (x - (-1))
  - TEMP_A/B/C: scratch cells, never assumed to survive a statement

Every statement is emitted as one Block (see assembler.py) and placed at
the session's program counter, so loop targets are labels instead of
hand-computed PC offsets.

Expansion sizes (cells):

    DEF 1   JMP 1   JMPI 4   MOV 4   ADD 5   SUB 9
    MUL 13  DIV 14  IFGT 14 IFLE 14

IFGT / IFLE compare by sign before subtracting, so they are exact for
every pair of operands in [-127, 127].

Arithmetic identities used:
    m(x) -= m(x)          clears x
    ZERO -= a; b -= ZERO  copies a into a cleared b (double negation)
    x -= NEG_ONE          increments x

Errors are per statement: a bad line is reported as a Diagnostic, emits
nothing, does not advance the program counter, and compilation continues.
"""

from __future__ import annotations
import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Tuple

from .assembler import Block, assemble
from .encoding import Instruction, disassemble
from .numeric import (
    BIN_PREFIX, HEX_PREFIX, LiteralError,
    is_decimal, unsigned_byte, signed_byte, decode_signed,
    bin_to_byte, hex_to_byte,
)
from .parser import Opcode, ParseError, Statement, parse_line
from .symbols import (
    AllocationError, SymbolTable,
    ZERO, NEG_ONE, TEMP_A, TEMP_B, TEMP_C,
    HEAP_START, MAX_VARIABLES, PROGRAM_LIMIT,
)

__all__ = ['CodeGenerator', 'CompilerSession', 'Diagnostic', 'DiagnosticKind']

log = logging.getLogger(__name__)


class DiagnosticKind(enum.Enum):
    PARSE = "parse"
    ALLOCATION = "allocation"
    WARNING = "warning"


@dataclass
class Diagnostic:
    kind: DiagnosticKind
    message: str
    line: int = 0

    @property
    def is_error(self) -> bool:
        return self.kind is not DiagnosticKind.WARNING

    def __str__(self):
        return f"line {self.line}: {self.kind.value}: {self.message}"


@dataclass
class CompilerSession:
    """Mutable state for one compilation run."""
    symbols: SymbolTable
    pc: int = 0
    definitions_closed: bool = False
    program: Dict[int, Instruction] = field(default_factory=dict)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    listing: List[Tuple[int, int, str]] = field(default_factory=list)

    def report(self, kind: DiagnosticKind, message: str, line: int = 0):
        diag = Diagnostic(kind, message, line)
        self.diagnostics.append(diag)
        if diag.is_error:
            log.error("%s", diag)
        else:
            log.warning("%s", diag)

    def check_space(self, cells: int):
        if self.pc + cells > PROGRAM_LIMIT:
            raise AllocationError(
                f"program store full: {cells} cells needed at address "
                f"{self.pc}, last usable cell is {PROGRAM_LIMIT - 1}")

    def emit(self, block: Block, source: str = ""):
        """Place a block at the program counter and advance past it."""
        self.check_space(len(block))
        for offset, instr in enumerate(assemble(block, self.pc)):
            self.program[self.pc + offset] = instr
        self.listing.append((self.pc, len(block), source))
        self.pc += len(block)


class CodeGenerator:
    """Generates an OISC program store from source text.

    Usage:
        gen = CodeGenerator()
        program = gen.generate(source)
        for d in gen.diagnostics:
            print(d)
    """

    def __init__(self, heap_start: int = HEAP_START,
                 max_variables: int = MAX_VARIABLES):
        self.heap_start = heap_start
        self.max_variables = max_variables
        self.session = self._new_session()
        self._dispatch = self._build_dispatch()

    def _new_session(self) -> CompilerSession:
        return CompilerSession(SymbolTable(self.heap_start, self.max_variables))

    def _build_dispatch(self) -> Dict[Opcode, Callable[[CompilerSession, Statement], Block]]:
        table = {
            Opcode.DEF: self._gen_def,
            Opcode.JMP: self._gen_jmp,
            Opcode.JMPI: self._gen_jmpi,
            Opcode.MOV: self._gen_mov,
            Opcode.ADD: self._gen_add,
            Opcode.SUB: self._gen_sub,
            Opcode.MUL: self._gen_mul,
            Opcode.DIV: self._gen_div,
            Opcode.IFGT: self._gen_ifgt,
            Opcode.IFLE: self._gen_ifle,
        }
        missing = set(Opcode) - set(table)
        if missing:
            raise NotImplementedError(
                f"no generator for {sorted(op.keyword for op in missing)}")
        return table

    # ── Accessors for the last run ────────────

    @property
    def program(self) -> Dict[int, Instruction]:
        return self.session.program

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return self.session.diagnostics

    @property
    def symbols(self) -> SymbolTable:
        return self.session.symbols

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.session.diagnostics if d.is_error]

    # ── Main generation entry point ───────────

    def generate(self, source: str) -> Dict[int, Instruction]:
        """Compile a complete program, starting a fresh session."""
        session = self._new_session()
        self.session = session

        self._gen_preamble(session)
        for i, line in enumerate(source.splitlines(), 1):
            self.compile_line(session, line, i)

        log.info("generated %d cells, %d variables, %d diagnostics",
                 session.pc, len(session.symbols), len(session.diagnostics))
        return session.program

    def compile_line(self, session: CompilerSession, text: str, line_num: int):
        """Compile one source line into the session.

        Any failure is recorded as a Diagnostic and the line emits nothing.
        """
        try:
            stmt = parse_line(text, line_num)
        except ParseError as e:
            session.report(DiagnosticKind.PARSE, _strip_line_prefix(e), line_num)
            return
        if stmt is None:
            return

        if stmt.op is not Opcode.DEF:
            session.definitions_closed = True

        try:
            block = self._dispatch[stmt.op](session, stmt)
            session.emit(block, stmt.text)
        except ParseError as e:
            session.report(DiagnosticKind.PARSE, _strip_line_prefix(e), line_num)
        except AllocationError as e:
            session.report(DiagnosticKind.ALLOCATION, str(e), line_num)
        else:
            log.debug("line %d: %s -> %d cells, pc=%d",
                      line_num, stmt, len(block), session.pc)

    def _gen_preamble(self, session: CompilerSession):
        """Initialise the constant and scratch cells."""
        block = Block()
        block.load(0, ZERO)
        block.load(-1, NEG_ONE)
        block.load(0, TEMP_A)
        block.load(0, TEMP_B)
        block.load(0, TEMP_C)
        session.emit(block, "preamble")

    # ── Operand resolution ────────────────────

    def _address(self, session: CompilerSession, token: str, line: int) -> int:
        """Operand -> 8-bit address."""
        try:
            if is_decimal(token):
                return unsigned_byte(int(token))
            if token.startswith(BIN_PREFIX):
                return bin_to_byte(token[1:])
            if token.startswith(HEX_PREFIX):
                return hex_to_byte(
                    token[1:],
                    warn=lambda msg: session.report(DiagnosticKind.WARNING, msg, line))
        except LiteralError as e:
            raise ParseError(str(e), line) from None

        addr = session.symbols.lookup(token)
        if addr is None:
            raise ParseError(f"cannot find variable: {token}", line)
        return addr

    def _value(self, session: CompilerSession, token: str, line: int) -> int:
        """DEF value -> 8-bit pattern.

        Decimal goes through the signed codec; everything else is taken as a
        raw byte (a variable name yields its address).
        """
        if is_decimal(token):
            return signed_byte(int(token))
        return self._address(session, token, line)

    def _operands(self, session: CompilerSession, stmt: Statement) -> List[int]:
        return [self._address(session, tok, stmt.line) for tok in stmt.operands]

    # ── Statements ────────────────────────────

    def _gen_def(self, session: CompilerSession, stmt: Statement) -> Block:
        """DEF name value — one LOADIM into the name's cell."""
        name, value_tok = stmt.operands
        if session.definitions_closed:
            session.report(DiagnosticKind.WARNING,
                           f"definition of '{name}' after the definition "
                           f"section", stmt.line)

        value = self._value(session, value_tok, stmt.line)
        try:
            session.symbols.check_name(name)
        except ValueError as e:
            raise ParseError(str(e), stmt.line) from None
        session.check_space(1)
        var = session.symbols.define(name, value, stmt.line)

        block = Block()
        block.load(decode_signed(value), var.address)
        return block

    def _gen_jmp(self, session: CompilerSession, stmt: Statement) -> Block:
        target, = self._operands(session, stmt)
        block = Block()
        block.jump(target)
        return block

    def _gen_jmpi(self, session: CompilerSession, stmt: Statement) -> Block:
        """JMPI a — negate m(a) into ZERO, copy into TEMP_A, branch via TEMP_A."""
        a, = self._operands(session, stmt)
        block = Block()
        block.subleq(a, ZERO)           # ZERO = -m(a)
        block.clear(TEMP_A)
        block.subleq(ZERO, TEMP_A)      # TEMP_A = m(a)
        block.jump(TEMP_A)              # also restores ZERO
        return block

    def _gen_mov(self, session: CompilerSession, stmt: Statement) -> Block:
        """MOV a b — m(b) = m(a)"""
        a, b = self._operands(session, stmt)
        block = Block()
        block.clear(b)
        block.subleq(a, ZERO)
        block.subleq(ZERO, b)
        block.clear(ZERO)
        return block

    def _gen_add(self, session: CompilerSession, stmt: Statement) -> Block:
        """ADD a b c — m(c) = m(a) + m(b)"""
        a, b, c = self._operands(session, stmt)
        block = Block()
        block.subleq(a, ZERO)
        block.subleq(b, ZERO)           # ZERO = -(a + b)
        block.clear(c)
        block.subleq(ZERO, c)
        block.clear(ZERO)
        return block

    def _gen_sub(self, session: CompilerSession, stmt: Statement) -> Block:
        """SUB a b c — m(c) = m(b) - m(a)"""
        a, b, c = self._operands(session, stmt)
        block = Block()
        block.clear(TEMP_A)
        block.clear(TEMP_B)
        block.subleq(a, TEMP_A)         # TEMP_A = -a
        block.subleq(b, TEMP_B)         # TEMP_B = -b
        block.subleq(TEMP_B, TEMP_A)    # TEMP_A = b - a
        block.clear(c)
        block.clear(TEMP_B)
        block.subleq(TEMP_A, TEMP_B)    # TEMP_B = a - b
        block.subleq(TEMP_B, c)
        return block

    def _gen_mul(self, session: CompilerSession, stmt: Statement) -> Block:
        """MUL a b c — m(c) = m(a) * m(b), adding a to c m(b) times.

        TEMP_B counts down from m(b); a counter that starts at or below
        zero skips the loop, so c ends up 0.
        """
        a, b, c = self._operands(session, stmt)
        block = Block()
        block.clear(TEMP_A)
        block.clear(TEMP_B)
        block.clear(TEMP_C)
        block.subleq(b, TEMP_A)
        block.subleq(TEMP_A, TEMP_B)    # TEMP_B = b
        block.subleq(NEG_ONE, TEMP_C)   # TEMP_C = 1
        block.clear(TEMP_A)
        block.subleq(a, TEMP_A)         # TEMP_A = -a
        block.clear(c)

        block.label("loop")
        block.subleq(ZERO, TEMP_B, "done")
        block.subleq(TEMP_A, c)         # c += a
        block.subleq(TEMP_C, TEMP_B, "done")
        block.jump("loop")
        block.label("done")
        return block

    def _gen_div(self, session: CompilerSession, stmt: Statement) -> Block:
        """DIV a b c — m(c) = m(b) / m(a), rounded down.

        TEMP_B holds what is left of the dividend.  Each pass subtracts the
        divisor; c counts the passes that left a positive remainder, plus
        one more if the last pass landed exactly on zero.
        """
        a, b, c = self._operands(session, stmt)
        block = Block()
        block.clear(TEMP_A)
        block.clear(TEMP_B)
        block.clear(TEMP_C)
        block.subleq(b, TEMP_A)
        block.subleq(TEMP_A, TEMP_B)    # TEMP_B = b
        block.clear(TEMP_A)
        block.subleq(a, TEMP_A)
        block.subleq(TEMP_A, TEMP_C)    # TEMP_C = a
        block.clear(c)

        block.label("loop")
        block.subleq(TEMP_C, TEMP_B, "last")
        block.subleq(NEG_ONE, c)        # c += 1
        block.jump("loop")
        block.label("last")
        block.subleq(NEG_ONE, TEMP_B, "done")
        block.subleq(NEG_ONE, c)        # remainder was exactly zero
        block.label("done")
        return block

    @staticmethod
    def _compare(block: Block, a: int, b: int, gt, le):
        """Branch to ``gt`` if m(a) > m(b), otherwise to ``le``.

        a - b only fits in 8 bits when both operands sit on the same side
        of zero, so the signs are sorted out first:

            a > 0,  b <= 0   ->  gt
            a <= 0, b > 0    ->  le
            otherwise        ->  gt unless a - b <= 0
        """
        block.clear(TEMP_C)
        block.subleq(b, TEMP_C)                 # TEMP_C = -b
        block.clear(TEMP_A)
        block.subleq(a, TEMP_A)                 # TEMP_A = -a
        block.clear(TEMP_B)
        block.subleq(TEMP_A, TEMP_B, "a_low")   # TEMP_B = a
        block.clear(TEMP_A)
        block.subleq(TEMP_C, TEMP_A, gt)        # TEMP_A = b
        block.jump("same")
        block.label("a_low")
        block.clear(TEMP_A)
        block.subleq(TEMP_C, TEMP_A, "same")
        block.jump(le)
        block.label("same")
        block.subleq(b, TEMP_B, le)             # TEMP_B = a - b
        block.jump(gt)

    def _gen_ifgt(self, session: CompilerSession, stmt: Statement) -> Block:
        """IFGT a b c — goto c if m(a) > m(b)."""
        a, b, target = self._operands(session, stmt)
        block = Block()
        self._compare(block, a, b, gt=target, le="done")
        block.label("done")
        return block

    def _gen_ifle(self, session: CompilerSession, stmt: Statement) -> Block:
        """IFLE a b c — goto c if m(a) <= m(b)."""
        a, b, target = self._operands(session, stmt)
        block = Block()
        self._compare(block, a, b, gt="done", le=target)
        block.label("done")
        return block

    # ── Listing ───────────────────────────────

    def get_listing(self) -> str:
        """Address / cell / source listing of the last run."""
        lines = []
        for start, count, source in self.session.listing:
            for addr in range(start, start + count):
                text = disassemble(self.session.program[addr])
                note = f"  ; {source}" if addr == start and source else ""
                lines.append(f"{addr:3d}  {text}{note}")
        return "\n".join(lines)


def _strip_line_prefix(err: ParseError) -> str:
    """ParseError text without its 'Line N: ' prefix."""
    text = str(err)
    prefix = f"Line {err.line_num}: "
    return text[len(prefix):] if err.line_num and text.startswith(prefix) else text
