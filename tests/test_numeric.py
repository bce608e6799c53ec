"""
Numeric codec tests.

Covers the saturation boundaries of both byte flavours and the
#binary / $hex literal rules.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from oisc_compiler.numeric import (
    LiteralError, is_decimal, is_literal, unsigned_byte, signed_byte,
    decode_signed, bin_to_byte, hex_to_byte, to_bits,
)


class TestUnsignedByte:
    @pytest.mark.parametrize("value,expected", [
        (-5, 0), (0, 0), (1, 1), (128, 128), (254, 254), (255, 255), (300, 255),
    ])
    def test_saturation(self, value, expected):
        assert unsigned_byte(value) == expected


class TestSignedByte:
    @pytest.mark.parametrize("value,expected", [
        (0, 0x00),
        (1, 0x01),
        (126, 0x7E),
        (127, 0x7F),
        (200, 0x7F),
        (-1, 0xFF),
        (-5, 0xFB),
        (-126, 0x82),
        (-127, 0x81),
        (-128, 0x81),
        (-300, 0x81),
    ])
    def test_patterns(self, value, expected):
        assert signed_byte(value) == expected

    def test_minus_128_never_produced(self):
        assert all(signed_byte(v) != 0x80 for v in range(-400, 400))

    def test_decodes_back_inside_range(self):
        for v in range(-127, 128):
            assert decode_signed(signed_byte(v)) == v

    def test_decode_signed(self):
        assert decode_signed(0x80) == -128
        assert decode_signed(0xF9) == -7
        assert decode_signed(0x7F) == 127


class TestLiterals:
    def test_is_decimal(self):
        assert is_decimal("42")
        assert is_decimal("-3")
        assert not is_decimal("4a")
        assert not is_decimal("-")
        assert not is_decimal("")

    def test_is_literal(self):
        assert is_literal("#101")
        assert is_literal("$ff")
        assert is_literal("12")
        assert not is_literal("count")

    def test_binary_keeps_low_bits(self):
        assert bin_to_byte("101") == 5
        assert bin_to_byte("1111111100000011") == 3

    def test_binary_rejects_other_digits(self):
        with pytest.raises(LiteralError):
            bin_to_byte("102")
        with pytest.raises(LiteralError):
            bin_to_byte("")

    def test_hex_exact(self):
        warnings = []
        assert hex_to_byte("F0", warn=warnings.append) == 0xF0
        assert hex_to_byte("0a", warn=warnings.append) == 0x0A
        assert warnings == []

    def test_hex_too_long_keeps_last_digits(self):
        warnings = []
        assert hex_to_byte("1F3", warn=warnings.append) == 0xF3
        assert len(warnings) == 1
        assert "too long" in warnings[0]

    def test_hex_too_short_is_padded(self):
        warnings = []
        assert hex_to_byte("F", warn=warnings.append) == 0x0F
        assert "too short" in warnings[0]

    def test_hex_rejects_other_digits(self):
        with pytest.raises(LiteralError):
            hex_to_byte("G1")

    def test_to_bits(self):
        assert to_bits(5) == "00000101"
        assert to_bits(-1) == "11111111"
        assert to_bits(3, width=4) == "0011"
