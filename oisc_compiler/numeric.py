"""
Numeric codec for the OISC toolchain.

Converts source literals into the two 8-bit field flavours the machine
understands:

  ADDRESS  — 8-bit unsigned.  Decimal input saturates to [0, 255].
  VALUE    — 8-bit two's complement.  Decimal input saturates to [-127, 127].

Literal prefixes (shared by the compiler and the CLI address arguments):

  123     decimal
  #1011   binary, padded / truncated to the low 8 bits
  $F0     hexadecimal, exactly two digits expected

Anything else is a symbol and is resolved by the caller.
"""

from __future__ import annotations
import logging
import re
from typing import Callable, Optional

__all__ = [
    'LiteralError', 'BIN_PREFIX', 'HEX_PREFIX',
    'is_decimal', 'is_literal', 'unsigned_byte', 'signed_byte',
    'decode_signed', 'bin_to_byte', 'hex_to_byte', 'to_bits',
]

log = logging.getLogger(__name__)

BIN_PREFIX = '#'
HEX_PREFIX = '$'

_DECIMAL_RE = re.compile(r'^-?\d+$')

# Weights for the magnitude bits of a negative value, most significant first.
_NEGATIVE_WEIGHTS = (64, 32, 16, 8, 4, 2, 1)


class LiteralError(ValueError):
    """Raised when a literal token has invalid digits for its radix."""


def is_decimal(token: str) -> bool:
    return bool(_DECIMAL_RE.match(token))


def is_literal(token: str) -> bool:
    """True if the token is written in one of the literal forms."""
    return is_decimal(token) or token.startswith((BIN_PREFIX, HEX_PREFIX))


def unsigned_byte(value: int) -> int:
    """Decimal -> 8-bit unsigned with silent saturation.

    <= 0 becomes 0 and >= 255 becomes 255.
    """
    if value <= 0:
        return 0
    if value >= 255:
        return 0xFF
    return value


def signed_byte(value: int) -> int:
    """Decimal -> 8-bit two's complement bit pattern (returned as 0..255).

    Saturates at +/-127; -128 is never produced.  Negative values are
    encoded bit by bit from the distance to -128.
    """
    if value >= 127:
        return 0x7F
    if value <= -127:
        return 0x81
    if value == 0:
        return 0x00
    if value > 0:
        return value

    remaining = value + 128
    bits = 0x80
    for weight in _NEGATIVE_WEIGHTS:
        if remaining >= weight:
            remaining -= weight
            bits |= weight
    return bits


def decode_signed(bits: int) -> int:
    """8-bit two's complement pattern -> int in [-128, 127]."""
    bits &= 0xFF
    if bits & 0x80:
        return (bits & 0x7F) - 128
    return bits


def bin_to_byte(digits: str) -> int:
    """Binary digits -> 8-bit pattern, keeping the low 8 bits."""
    if not digits or any(ch not in '01' for ch in digits):
        raise LiteralError(f"invalid binary literal: '{BIN_PREFIX}{digits}'")
    return int(digits[-8:], 2)


def hex_to_byte(digits: str,
                warn: Optional[Callable[[str], None]] = None) -> int:
    """Two hex digits -> 8-bit pattern.

    Longer input keeps only the last two digits, shorter input is padded
    with leading zeros.  Both cases are reported through ``warn`` (or the
    module logger when no callback is given).
    """
    if warn is None:
        warn = log.warning
    if not digits or any(ch not in '0123456789abcdefABCDEF' for ch in digits):
        raise LiteralError(f"invalid hex literal: '{HEX_PREFIX}{digits}'")

    if len(digits) > 2:
        warn(f"hex literal '{HEX_PREFIX}{digits}' too long, "
             f"high digits discarded")
        digits = digits[-2:]
    elif len(digits) < 2:
        warn(f"hex literal '{HEX_PREFIX}{digits}' too short, "
             f"leading zeros added")
    return int(digits, 16)


def to_bits(value: int, width: int = 8) -> str:
    """Format the low ``width`` bits of value as a 0/1 string."""
    return format(value & ((1 << width) - 1), f'0{width}b')
