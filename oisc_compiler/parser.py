"""
Line parser for OISC source programs.

Source format: one operation per line, whitespace separated.

    DEF  name value        define / redefine a variable
    JMP  target            unconditional jump
    JMPI a                 copy m(a) into TEMP_A, then jump to program
                           cell 253 (TEMP_A's address), not to m(a)
    MOV  a b               m(b) = m(a)
    ADD  a b c             m(c) = m(a) + m(b)
    SUB  a b c             m(c) = m(b) - m(a)
    MUL  a b c             m(c) = m(a) * m(b)
    DIV  a b c             m(c) = m(b) / m(a)
    IFGT a b c             if m(a) >  m(b) goto c
    IFLE a b c             if m(a) <= m(b) goto c

Tokens after the required operands are ignored, so anything following them
on the line is a comment.  Operands are kept as raw text here; resolving
them to addresses or values is the code generator's job.
"""

from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import List, Optional, Tuple

__all__ = ['Opcode', 'Statement', 'ParseError', 'parse_line', 'parse_source']


class ParseError(Exception):
    def __init__(self, message: str, line_num: int = 0):
        self.line_num = line_num
        super().__init__(f"Line {line_num}: {message}" if line_num else message)


class Opcode(enum.Enum):
    """The ten source operations, with their operand counts."""
    DEF = ("DEF", 2)
    JMP = ("JMP", 1)
    JMPI = ("JMPI", 1)
    MOV = ("MOV", 2)
    ADD = ("ADD", 3)
    SUB = ("SUB", 3)
    MUL = ("MUL", 3)
    DIV = ("DIV", 3)
    IFGT = ("IFGT", 3)
    IFLE = ("IFLE", 3)

    def __init__(self, keyword: str, arity: int):
        self.keyword = keyword
        self.arity = arity


KEYWORDS = {op.keyword: op for op in Opcode}


@dataclass(frozen=True)
class Statement:
    op: Opcode
    operands: Tuple[str, ...]
    line: int = 0
    text: str = ""

    def __str__(self):
        return f"{self.op.keyword} {' '.join(self.operands)}"


def parse_line(text: str, line_num: int = 0) -> Optional[Statement]:
    """Parse one source line.

    Returns None for a blank line.  Raises ParseError for an unknown
    operator or too few operands.
    """
    words = text.split()
    if not words:
        return None

    keyword = words[0]
    op = KEYWORDS.get(keyword)
    if op is None:
        raise ParseError(f"cannot parse operator '{keyword}', skipping line",
                         line_num)

    operands = words[1:1 + op.arity]
    if len(operands) < op.arity:
        raise ParseError(f"need {op.arity} operands for {keyword}, "
                         f"got {len(operands)}", line_num)

    return Statement(op, tuple(operands), line_num, text.rstrip())


def parse_source(source: str) -> Tuple[List[Statement], List[ParseError]]:
    """Parse a whole program, collecting errors instead of stopping."""
    statements: List[Statement] = []
    errors: List[ParseError] = []
    for i, line in enumerate(source.splitlines(), 1):
        try:
            stmt = parse_line(line, i)
        except ParseError as e:
            errors.append(e)
            continue
        if stmt is not None:
            statements.append(stmt)
    return statements, errors
