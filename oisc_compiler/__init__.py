"""
OISC Toolchain — compiler for a subtract-and-branch one-instruction computer
============================================================================
Compiles a small register-free language (DEF / JMP / JMPI / MOV / ADD / SUB /
MUL / DIV / IFGT / IFLE) into LOADIM + SUBLEQ cells and writes them as a
256 x 25-bit memory initialisation image for the FPGA build.

Architecture:
    ┌──────────┐    ┌──────────┐    ┌───────────┐    ┌───────────┐    ┌──────────┐
    │  Source  │───>│  Parser  │───>│  CodeGen  │───>│ Assembler │───>│  Image   │
    │ (.oisc)  │    │ (stmts)  │    │ (blocks)  │    │ (cells)   │    │ (.mif)   │
    └──────────┘    └──────────┘    └───────────┘    └───────────┘    └──────────┘

    - numeric.py:   literal codec (decimal / #binary / $hex, 8-bit saturation)
    - parser.py:    one statement per line, closed Opcode set
    - symbols.py:   variable heap + reserved cells
    - codegen.py:   per-statement expansion into SUBLEQ arithmetic
    - assembler.py: label resolution inside each generated block
    - encoding.py:  25-bit cell layout, .mif read/write, disassembly

The matching execution engine lives in ``oisc_emulator``.
"""

__version__ = "0.4.0"

from pathlib import Path
from typing import Dict, Optional, Union

from .numeric import LiteralError, unsigned_byte, signed_byte, decode_signed
from .encoding import (
    Instruction, InstrKind, EMPTY, ImageFormatError,
    encode, decode, disassemble,
    serialize_image, parse_image, load_image, write_image,
)
from .symbols import AllocationError, SymbolTable, Variable
from .parser import Opcode, Statement, ParseError, parse_line, parse_source
from .assembler import AssemblerError, Block, assemble
from .codegen import CodeGenerator, CompilerSession, Diagnostic, DiagnosticKind

DEFAULT_IMAGE = "compiled.mif"


def compile_source(source: str, *, output: str = "image"
                   ) -> Union[str, Dict[int, Instruction]]:
    """Compile OISC source to an image text or a program store.

    Args:
        source: program text, one statement per line.
        output: 'image' (default) for .mif text, 'program' for the
                address -> Instruction map, 'listing' for a disassembly.

    Diagnostics are logged; use CodeGenerator directly to inspect them.
    """
    gen = CodeGenerator()
    program = gen.generate(source)

    if output == 'program':
        return program
    elif output == 'listing':
        return gen.get_listing()
    return serialize_image(program)


def compile_file(source_path: Union[str, Path],
                 output_path: Optional[Union[str, Path]] = None) -> str:
    """Compile a source file; write the image when output_path is given."""
    source = Path(source_path).read_text(encoding="utf-8")
    image = compile_source(source)
    if output_path is not None:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(image)
    return image
