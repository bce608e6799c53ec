"""
Line parser and block assembler tests.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from oisc_compiler.assembler import AssemblerError, Block, assemble
from oisc_compiler.encoding import Instruction
from oisc_compiler.parser import Opcode, ParseError, parse_line, parse_source
from oisc_compiler.symbols import ZERO


class TestParseLine:
    def test_blank_line(self):
        assert parse_line("") is None
        assert parse_line("   \t ") is None

    def test_operands(self):
        stmt = parse_line("ADD a b c", 3)
        assert stmt.op is Opcode.ADD
        assert stmt.operands == ("a", "b", "c")
        assert stmt.line == 3

    def test_extra_tokens_ignored(self):
        stmt = parse_line("JMP 12 back to the top")
        assert stmt.operands == ("12",)
        assert stmt.text == "JMP 12 back to the top"

    def test_unknown_operator(self):
        with pytest.raises(ParseError) as exc:
            parse_line("NOP 1", 7)
        assert exc.value.line_num == 7
        assert str(exc.value).startswith("Line 7:")

    def test_keywords_are_case_sensitive(self):
        with pytest.raises(ParseError):
            parse_line("mov a b")

    def test_too_few_operands(self):
        with pytest.raises(ParseError, match="need 3 operands"):
            parse_line("IFGT a b")

    def test_every_opcode_has_arity(self):
        arities = {op.keyword: op.arity for op in Opcode}
        assert arities == {
            "DEF": 2, "JMP": 1, "JMPI": 1, "MOV": 2, "ADD": 3,
            "SUB": 3, "MUL": 3, "DIV": 3, "IFGT": 3, "IFLE": 3,
        }

    def test_parse_source_collects_errors(self):
        stmts, errors = parse_source("DEF a 1\n\nBAD\nJMP 255\n")
        assert [s.op for s in stmts] == [Opcode.DEF, Opcode.JMP]
        assert len(errors) == 1
        assert errors[0].line_num == 3


class TestBlockAssembler:
    def test_fall_through_targets(self):
        block = Block()
        block.load(0, ZERO)
        block.clear(7)
        cells = assemble(block, 10)
        assert cells == [Instruction.load(0, ZERO, 11), Instruction.subleq(7, 7, 12)]

    def test_backward_label(self):
        block = Block()
        block.clear(5)
        block.label("loop")
        block.subleq(6, 5)
        block.jump("loop")
        cells = assemble(block, 20)
        assert cells[2] == Instruction.subleq(ZERO, ZERO, 21)

    def test_end_label_names_next_cell(self):
        block = Block()
        block.subleq(1, 2, "done")
        block.subleq(3, 4)
        block.label("done")
        cells = assemble(block, 100)
        assert cells[0].c == 102

    def test_absolute_target(self):
        block = Block()
        block.jump(255)
        assert assemble(block, 0) == [Instruction.subleq(ZERO, ZERO, 255)]

    def test_undefined_label(self):
        block = Block()
        block.jump("nowhere")
        with pytest.raises(AssemblerError, match="undefined"):
            assemble(block, 0)

    def test_duplicate_label(self):
        block = Block()
        block.label("x")
        block.clear(1)
        block.label("x")
        block.clear(2)
        with pytest.raises(AssemblerError, match="duplicate"):
            assemble(block, 0)
