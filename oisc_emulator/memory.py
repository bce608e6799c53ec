"""
OISC Virtual Machine — sparse data store with a memory-mapped I/O cell

Data memory holds 256 signed 8-bit cells.  Cells come into existence when
first written; reading one that was never written is a fault rather than
an implicit zero, so a program that forgets to initialise a variable
stops instead of computing with garbage.

Address $FF is the I/O port: reads and writes are routed to handler
callbacks (default: console prompt / print) and nothing is stored.
Every SUBLEQ that names the port reads it, including the one that writes
to it.  A compiled result aimed at ioPort first clears the destination
(``subleq 255, 255``), so the console asks for two inputs and prints
their difference before the real result is printed.
"""

from typing import Callable, Dict, Iterator, Optional, Tuple

from oisc_compiler.symbols import IO_PORT


class UninitializedReadError(Exception):
    """Read from a data cell that was never written."""
    def __init__(self, address: int, pc: Optional[int] = None):
        self.address = address
        self.pc = pc
        where = f" at pc {pc}" if pc is not None else ""
        super().__init__(f"read of uninitialized address {address}{where}")


class Memory:
    """256-cell data store with I/O routing.

    Values are kept as Python ints in [-128, 127].
    """

    SIZE = 256

    def __init__(self, io_address: int = IO_PORT,
                 read_fn: Optional[Callable[[], int]] = None,
                 write_fn: Optional[Callable[[int], None]] = None):
        self._cells: Dict[int, int] = {}
        self.io_address = io_address
        self._io_read = read_fn
        self._io_write = write_fn

        # Watchpoints: addr -> [callback(addr, old, new)]
        self._watchpoints: Dict[int, list] = {}

    # --- Core read/write ---

    def read(self, addr: int) -> int:
        addr &= 0xFF
        if addr == self.io_address and self._io_read is not None:
            return self._io_read()
        try:
            return self._cells[addr]
        except KeyError:
            raise UninitializedReadError(addr) from None

    def write(self, addr: int, value: int):
        addr &= 0xFF
        if addr == self.io_address and self._io_write is not None:
            self._io_write(value)
            return
        old = self._cells.get(addr)
        for cb in self._watchpoints.get(addr, ()):
            cb(addr, old, value)
        self._cells[addr] = value

    # --- I/O handler registration ---

    def register_io_handler(self, read_fn: Optional[Callable[[], int]] = None,
                            write_fn: Optional[Callable[[int], None]] = None):
        """Route reads/writes of the I/O cell to the given callables."""
        if read_fn:
            self._io_read = read_fn
        if write_fn:
            self._io_write = write_fn

    def add_watchpoint(self, addr: int, callback: Callable):
        """callback(addr, old_value, new_value) on every write to addr."""
        self._watchpoints.setdefault(addr & 0xFF, []).append(callback)

    # --- Inspection ---

    def clear(self):
        self._cells.clear()

    def is_initialized(self, addr: int) -> bool:
        return (addr & 0xFF) in self._cells

    def get(self, addr: int, default: Optional[int] = None) -> Optional[int]:
        """Peek without faulting and without touching I/O."""
        return self._cells.get(addr & 0xFF, default)

    def snapshot(self) -> Dict[int, int]:
        return dict(sorted(self._cells.items()))

    def items(self) -> Iterator[Tuple[int, int]]:
        return iter(sorted(self._cells.items()))

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, addr: int) -> bool:
        return self.is_initialized(addr)
