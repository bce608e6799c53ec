#!/usr/bin/env python3
"""
oisccc — OISC compiler CLI

Usage:
    python oisccc.py <input.oisc> [-o compiled.mif] [--listing] [--strict]
                                  [-v] [-q] [--log-file FILE]

Output format is picked from the output file extension:
    .mif (default)  → memory initialisation image for the FPGA build
    .lst            → address / cell / source listing

Examples:
    python oisccc.py countdown.oisc                 # writes compiled.mif
    python oisccc.py countdown.oisc -o count.mif
    python oisccc.py countdown.oisc --listing       # listing to stdout
    python oisccc.py countdown.oisc --strict        # exit 1 on any diagnostic
"""

import argparse
import logging
import os
import sys
from pathlib import Path

# Allow running from project root or as module
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from oisc_compiler import __version__, DEFAULT_IMAGE
from oisc_compiler.codegen import CodeGenerator
from oisc_compiler.encoding import serialize_image


def setup_logging(verbose: int = 0, quiet: bool = False,
                  log_file: str = None):
    """Configure the root logger from the common -v / -q / --log-file flags."""
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = logging.WARNING
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    handlers = []
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    handlers.append(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if log_file else level,
        handlers=handlers,
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="oisccc",
        description="Compiler for the subtract-and-branch OISC",
    )
    parser.add_argument("input", help="Input source file")
    parser.add_argument("-o", "--output", default=None,
                        help=f"Output file (default: {DEFAULT_IMAGE})")
    parser.add_argument("--listing", action="store_true",
                        help="Print a listing to stdout instead of writing an image")
    parser.add_argument("--strict", action="store_true",
                        help="Exit with status 1 if any statement was skipped")
    parser.add_argument("--verbose", "-v", action="count", default=0,
                        help="Increase verbosity (-v, -vv)")
    parser.add_argument("--quiet", "-q", action="store_true",
                        help="Only report errors")
    parser.add_argument("--log-file", default=None,
                        help="Also write a debug log to this file")
    parser.add_argument("--version", action="version",
                        version=f"oisccc {__version__}")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet, args.log_file)

    try:
        with open(args.input, "r", encoding="utf-8") as f:
            source = f.read()
    except FileNotFoundError:
        print(f"Error: File not found: {args.input}", file=sys.stderr)
        return 1
    except IOError as e:
        print(f"Error reading {args.input}: {e}", file=sys.stderr)
        return 1

    gen = CodeGenerator()
    program = gen.generate(source)
    errors = gen.errors

    if args.listing:
        print(gen.get_listing())
    else:
        output = args.output or DEFAULT_IMAGE
        ext = os.path.splitext(output)[1].lower()
        text = gen.get_listing() + "\n" if ext == ".lst" else serialize_image(program)
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        if not args.quiet:
            print(f"Compiled {args.input} -> {output} "
                  f"({len(program)} cells, {len(gen.symbols)} variables)",
                  file=sys.stderr)

    if errors and not args.quiet:
        print(f"{len(errors)} statement(s) skipped", file=sys.stderr)
    if args.strict and gen.diagnostics:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
