"""
Instruction encoding and .mif image tests.

The image layout is consumed by the FPGA toolchain, so the exact text of
the header and records is checked, not just that it round-trips.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from oisc_compiler.encoding import (
    EMPTY, HEADER, ImageFormatError, Instruction, InstrKind,
    decode, disassemble, encode, load_image, parse_image, populated,
    serialize_image, write_image,
)
from oisc_compiler.symbols import ZERO, NEG_ONE


def _image_lines(program=None):
    return serialize_image(program or {}).splitlines()


class TestCellEncoding:
    def test_load_layout(self):
        bits = encode(Instruction.load(0, ZERO, 1))
        assert bits == "1" + "00000000" + "11111010" + "00000001"
        assert len(bits) == 25

    def test_negative_immediate(self):
        assert encode(Instruction.load(-1, NEG_ONE, 2)) == \
            "1" + "11111111" + "11111110" + "00000010"

    def test_subleq_layout(self):
        assert encode(Instruction.subleq(3, 4, 5)) == \
            "0" + "00000011" + "00000100" + "00000101"

    def test_decode_load_is_signed(self):
        instr = decode("1" + "11111001" + "11111000" + "00000110")
        assert instr == Instruction(InstrKind.LOAD, -7, 248, 6)

    def test_decode_rejects_bad_width(self):
        with pytest.raises(ImageFormatError):
            decode("0" * 24)

    def test_decode_rejects_non_binary(self):
        with pytest.raises(ImageFormatError):
            decode("0" * 24 + "2")

    def test_empty_sentinel(self):
        assert EMPTY.is_empty
        assert decode("0" * 25).is_empty
        assert not Instruction.load(0, 0, 0).is_empty

    def test_every_address_round_trips(self):
        program = {addr: Instruction.subleq(addr, 255 - addr, (addr + 1) & 0xFF)
                   for addr in range(256)}
        assert parse_image(serialize_image(program)) == program


class TestDisassembly:
    def test_load(self):
        assert disassemble(Instruction.load(-1, 254, 2)) == "loadim     -1, m(254),   2"

    def test_subleq(self):
        assert disassemble(Instruction.subleq(250, 7, 12)) == "subleq m(250), m(  7),  12"

    def test_str_uses_disassembly(self):
        instr = Instruction.subleq(1, 2, 3)
        assert str(instr) == disassemble(instr)


class TestImageText:
    def test_header(self):
        lines = _image_lines()
        assert tuple(lines[:6]) == HEADER
        assert lines[0] == "DEPTH = 256;"
        assert lines[1] == "WIDTH = 25;"
        assert lines[4] == "CONTENT"
        assert lines[5] == "BEGIN"

    def test_one_record_per_address(self):
        lines = _image_lines()
        assert len(lines) == 6 + 256 + 1
        assert lines[-1] == "END;"
        assert lines[6] == "00000000 : 0000000000000000000000000 ;"
        assert lines[6 + 255] == "11111111 : 0000000000000000000000000 ;"

    def test_populated_record(self):
        lines = _image_lines({0: Instruction.load(0, ZERO, 1)})
        assert lines[6] == "00000000 : 1000000001111101000000001 ;"

    def test_trailing_newline(self):
        assert serialize_image({}).endswith("END;\n")

    def test_populated_skips_empty(self):
        program = {0: Instruction.load(1, 2, 1), 1: EMPTY, 7: Instruction.subleq(1, 1, 8)}
        assert populated(program) == [0, 7]

    def test_write_and_load(self, tmp_path):
        program = {0: Instruction.load(5, 249, 1), 1: Instruction.subleq(250, 250, 255)}
        path = tmp_path / "out.mif"
        write_image(program, path)
        loaded = load_image(path)
        assert loaded[0] == program[0]
        assert loaded[1] == program[1]
        assert len(loaded) == 256


class TestMalformedImages:
    def _text(self):
        return serialize_image({0: Instruction.load(3, 249, 1)})

    def test_missing_terminator(self):
        text = self._text().replace("END;", "")
        with pytest.raises(ImageFormatError, match="END;"):
            parse_image(text)

    def test_missing_begin(self):
        text = self._text().replace("BEGIN", "")
        with pytest.raises(ImageFormatError, match="BEGIN"):
            parse_image(text)

    def test_wrong_width_header(self):
        text = self._text().replace("WIDTH = 25;", "WIDTH = 24;")
        with pytest.raises(ImageFormatError, match="WIDTH"):
            parse_image(text)

    def test_wrong_depth_header(self):
        text = self._text().replace("DEPTH = 256;", "DEPTH = 128;")
        with pytest.raises(ImageFormatError, match="DEPTH"):
            parse_image(text)

    def test_short_data_field(self):
        text = self._text().replace(
            "00000001 : 0000000000000000000000000 ;",
            "00000001 : 000000000000000000000000 ;")
        with pytest.raises(ImageFormatError) as exc:
            parse_image(text)
        assert exc.value.line_num == 8

    def test_non_binary_data(self):
        text = self._text().replace(
            "00000001 : 0000000000000000000000000 ;",
            "00000001 : 000000000000000000000000x ;")
        with pytest.raises(ImageFormatError):
            parse_image(text)

    def test_bad_field_count(self):
        text = self._text().replace(
            "00000001 : 0000000000000000000000000 ;",
            "00000001 : 0000000000000000000000000 : 1 ;")
        with pytest.raises(ImageFormatError):
            parse_image(text)

    def test_bad_address_field(self):
        text = self._text().replace(
            "00000001 : ", "0000001 : ", 1)
        with pytest.raises(ImageFormatError, match="address"):
            parse_image(text)

    def test_duplicate_address(self):
        text = self._text().replace(
            "00000001 : 0000000000000000000000000 ;",
            "00000000 : 0000000000000000000000000 ;")
        with pytest.raises(ImageFormatError, match="duplicate"):
            parse_image(text)
