#!/usr/bin/env python3
"""
oisckit — OISC toolkit
======================

One CLI for everything:
    oisckit compile  — Compile source to a .mif image
    oisckit run      — Run an image (or a source file) on the virtual machine
    oisckit initram  — Execute only the leading load instructions, dump RAM
    oisckit romdump  — Disassemble every populated cell of an image
    oisckit romget   — Disassemble one cell
    oisckit ramget   — Run, then show one data cell
    oisckit console  — Interactive machine console

Usage:
    python oisckit.py <command> [options]
    python oisckit.py <command> --help

Examples:
    python oisckit.py compile examples/countdown.oisc -o countdown.mif
    python oisckit.py run countdown.mif --max-steps 10000 --ramdump
    python oisckit.py run examples/multiply.oisc --trace
    python oisckit.py initram countdown.mif
    python oisckit.py romget countdown.mif 5
    python oisckit.py console

The I/O cell (ioPort, address 255) is read by every instruction that
names it.  Writing a result there clears it first, which consumes two
inputs and prints their difference before the result itself.
"""

import argparse
import os
import sys

# Ensure our packages are importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from oisc_compiler import DEFAULT_IMAGE, compile_file, compile_source
from oisc_compiler.encoding import (
    EMPTY, ImageFormatError, disassemble, load_image, populated,
)
from oisc_compiler.numeric import (
    BIN_PREFIX, HEX_PREFIX, LiteralError, bin_to_byte, hex_to_byte, is_decimal,
)
from oisc_emulator import Machine, StopReason, UninitializedReadError
from oisccc import setup_logging

__version__ = "0.4.0"

IMAGE_EXTENSIONS = (".mif",)


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="oisckit",
        description="OISC toolkit — compile, run, inspect",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""commands:
  compile    Compile source to a .mif image
  run        Run an image or source file
  initram    Run the load-instruction prefix and dump RAM
  romdump    Disassemble every populated cell
  romget     Disassemble one cell
  ramget     Run, then show one data cell
  console    Interactive console
""",
    )
    parser.add_argument("--version", action="version", version=f"oisckit {__version__}")
    parser.add_argument("--verbose", "-v", action="count", default=0)
    parser.add_argument("--quiet", "-q", action="store_true")
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="command", metavar="command")

    # ── compile ──────────────────────────────────────────────────────────
    p_cc = sub.add_parser("compile", help="Compile source to a .mif image")
    p_cc.add_argument("input", help="Input source file")
    p_cc.add_argument("-o", "--output", default=DEFAULT_IMAGE,
                      help=f"Output image (default: {DEFAULT_IMAGE})")

    # ── run ──────────────────────────────────────────────────────────────
    p_run = sub.add_parser("run", help="Run an image or source file")
    p_run.add_argument("input", help="Input .mif image or source file")
    p_run.add_argument("--max-steps", type=int, default=None,
                       help="Stop after N instructions (default: run until halt)")
    p_run.add_argument("--trace", action="store_true",
                       help="Print the executed instructions (last %d)" % Machine.TRACE_LIMIT)
    p_run.add_argument("--ramdump", action="store_true",
                       help="Dump RAM after the run")

    # ── initram ──────────────────────────────────────────────────────────
    p_init = sub.add_parser("initram", help="Run load prefix and dump RAM")
    p_init.add_argument("input", help="Input .mif image or source file")

    # ── romdump ──────────────────────────────────────────────────────────
    p_dump = sub.add_parser("romdump", help="Disassemble every populated cell")
    p_dump.add_argument("input", help="Input .mif image or source file")

    # ── romget ───────────────────────────────────────────────────────────
    p_get = sub.add_parser("romget", help="Disassemble one cell")
    p_get.add_argument("input", help="Input .mif image or source file")
    p_get.add_argument("address", help="Cell address (decimal, $hex or #binary)")

    # ── ramget ───────────────────────────────────────────────────────────
    p_ram = sub.add_parser("ramget", help="Run, then show one data cell")
    p_ram.add_argument("input", help="Input .mif image or source file")
    p_ram.add_argument("address", help="Data address (decimal, $hex or #binary)")
    p_ram.add_argument("--initram", action="store_true",
                       help="Only run the load-instruction prefix")
    p_ram.add_argument("--max-steps", type=int, default=None,
                       help="Stop after N instructions")

    # ── console ──────────────────────────────────────────────────────────
    sub.add_parser("console", help="Interactive console")

    # ── Parse and dispatch ───────────────────────────────────────────────
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.verbose, args.quiet, args.log_file)

    handler = COMMANDS[args.command]
    try:
        return handler(args) or 0
    except (ImageFormatError, UninitializedReadError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        print(f"Error: File not found: {e.filename}", file=sys.stderr)
        return 1


# ═════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═════════════════════════════════════════════════════════════════════════════

def parse_address(text: str) -> int:
    """Parse a decimal, $hex or #binary address in 0..255."""
    text = text.strip()
    try:
        if text.startswith(HEX_PREFIX):
            return hex_to_byte(text[1:])
        if text.startswith(BIN_PREFIX):
            return bin_to_byte(text[1:])
    except LiteralError as e:
        raise ValueError(str(e)) from None
    if not is_decimal(text):
        raise ValueError(f"invalid address '{text}'")
    value = int(text)
    if not 0 <= value <= 255:
        raise ValueError(f"address {value} out of range 0-255")
    return value


def read_program(path: str):
    """Load an image, or compile a source file in memory."""
    if os.path.splitext(path)[1].lower() in IMAGE_EXTENSIONS:
        return load_image(path)
    with open(path, "r", encoding="utf-8") as f:
        return compile_source(f.read(), output="program")


def format_romdump(program) -> str:
    lines = [f"Addr: {addr:3d} Instr: {disassemble(program[addr])}"
             for addr in populated(program)]
    return "\n".join(lines)


def format_ramdump(cells) -> str:
    lines = [f"Addr: {addr:3d} Val: {value:4d}" for addr, value in cells]
    return "\n".join(lines)


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND IMPLEMENTATIONS
# ═════════════════════════════════════════════════════════════════════════════

def cmd_compile(args):
    compile_file(args.input, args.output)
    print(f"Compiled {args.input} -> {args.output}")


def cmd_run(args):
    vm = Machine(read_program(args.input))
    vm.enable_trace(args.trace)
    reason = vm.run(args.max_steps)
    if args.trace:
        print(vm.get_trace())
    if reason is StopReason.STEP_LIMIT:
        print(f"Stopped at step limit ({vm.steps} instructions, pc {vm.pc}).")
    else:
        print(f"Done. {vm.steps} instructions executed.")
    if args.ramdump:
        print(format_ramdump(vm.mem.items()))


def cmd_initram(args):
    vm = Machine(read_program(args.input))
    count = vm.preload()
    print(f"Done. {count} load instructions read.")
    print(format_ramdump(vm.mem.items()))


def cmd_romdump(args):
    print(format_romdump(read_program(args.input)))


def cmd_romget(args):
    program = read_program(args.input)
    addr = parse_address(args.address)
    print(f"Addr: {addr:3d} {disassemble(program.get(addr, EMPTY))}")


def cmd_ramget(args):
    addr = parse_address(args.address)
    vm = Machine(read_program(args.input))
    if args.initram:
        vm.preload()
    else:
        vm.run(args.max_steps)
    value = vm.mem.get(addr)
    shown = "uninitialized" if value is None else f"{value:3d}"
    print(f"Addr: {addr:3d} Value: {shown}")


def cmd_console(args):
    Console().loop()


# ═════════════════════════════════════════════════════════════════════════════
# INTERACTIVE CONSOLE
# ═════════════════════════════════════════════════════════════════════════════

CONSOLE_HELP = """Available commands:
compile <filename>: compile specified file and load rom from the result
load <filename>: load rom from specified file
run: run program currently loaded to rom
initram: initialize ram by running load instructions in rom
ramdump: display current contents of ram
romdump: display current contents of rom
ramget <ram address>: get value stored in ram address
romget <rom address>: get instruction stored in rom address
quit: end application"""


class Console:
    """Line-oriented machine console."""

    PROMPT = 'Enter command or type "commands" to get a list of available commands: '

    def __init__(self, machine: Machine = None, out=None):
        self.vm = machine or Machine()
        self.out = out or sys.stdout

    def _print(self, text: str = ""):
        print(text, file=self.out)

    def loop(self, lines=None):
        """Read commands until 'quit' or end of input."""
        self._print("Welcome to the One Instruction Set Computer (OISC) emulator!")
        source = iter(lines) if lines is not None else None
        while True:
            try:
                line = next(source) if source else input(self.PROMPT)
            except (StopIteration, EOFError):
                break
            if not self.handle(line):
                break

    def handle(self, line: str) -> bool:
        """Execute one command.  Returns False when the console should exit."""
        words = line.split(None, 1)
        if not words:
            return True
        cmd = words[0]
        arg = words[1].strip() if len(words) > 1 else ""

        try:
            if cmd == "commands":
                self._print(CONSOLE_HELP)
            elif cmd == "compile":
                self._compile(arg)
            elif cmd == "load":
                self._load(arg)
            elif cmd == "run":
                self._run()
            elif cmd == "initram":
                count = self.vm.preload()
                self._print(f"Done. {count} load instructions read.")
                self._ramdump()
            elif cmd == "romdump":
                self._print("Displaying instructions stored in rom:")
                self._print(format_romdump(self.vm.program))
                self._print("Done.")
            elif cmd == "ramdump":
                self._ramdump()
            elif cmd == "romget":
                addr = parse_address(arg)
                self._print(f"Addr: {addr:3d} {disassemble(self.vm.fetch(addr))}")
            elif cmd == "ramget":
                addr = parse_address(arg)
                value = self.vm.mem.get(addr)
                shown = "uninitialized" if value is None else f"{value:3d}"
                self._print(f"Addr: {addr:3d} Value: {shown}")
            elif cmd.lower() == "quit":
                self._print("Goodbye!")
                return False
            else:
                self._print("Invalid command.")
        except ValueError as e:
            self._print(f"Invalid address: {e}")
        except FileNotFoundError as e:
            self._print(f"Cannot find file: {e.filename}")
        return True

    def _compile(self, path: str):
        if not path:
            raise FileNotFoundError(2, "no file given", path)
        compile_file(path, DEFAULT_IMAGE)
        self._load(DEFAULT_IMAGE)

    def _load(self, path: str):
        if not path:
            raise FileNotFoundError(2, "no file given", path)
        self._print(f"Loading rom state from file {path}")
        try:
            count = self.vm.load_image(path)
        except ImageFormatError as e:
            self._print(f"File {path} not formatted correctly. Aborting load. ({e})")
            return
        self._print(f"Finished loading rom state, {count} rom lines read.")

    def _run(self):
        self._print("Running program stored in rom.")
        try:
            self.vm.run()
        except UninitializedReadError as e:
            self._print(f"Execution fault: {e}")
            return
        except KeyboardInterrupt:
            self._print(f"Interrupted at pc {self.vm.pc}.")
            return
        self._print(f"Done. {self.vm.steps} instructions executed.")

    def _ramdump(self):
        self._print("Displaying all loaded addresses in ram:")
        self._print(format_ramdump(self.vm.mem.items()))
        self._print("Done.")


# ═════════════════════════════════════════════════════════════════════════════
# COMMAND DISPATCH TABLE
# ═════════════════════════════════════════════════════════════════════════════

COMMANDS = {
    "compile": cmd_compile,
    "run": cmd_run,
    "initram": cmd_initram,
    "romdump": cmd_romdump,
    "romget": cmd_romget,
    "ramget": cmd_ramget,
    "console": cmd_console,
}


if __name__ == "__main__":
    sys.exit(main())
