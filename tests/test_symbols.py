"""
Symbol table tests: heap allocation, redefinition, reserved names.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from oisc_compiler.symbols import (
    AllocationError, SymbolTable, HEAP_START, IO_PORT, MAX_VARIABLES,
)


class TestAllocation:
    def test_heap_grows_downward(self):
        table = SymbolTable()
        assert table.define("a", 1).address == HEAP_START == 249
        assert table.define("b", 2).address == 248
        assert table.heap_pointer == 247

    def test_redefinition_keeps_address(self):
        table = SymbolTable()
        table.define("a", 1)
        table.define("b", 2)
        var = table.define("a", 9)
        assert var.address == 249
        assert var.value == 9
        assert len(table) == 2

    def test_variable_limit(self):
        table = SymbolTable()
        for i in range(MAX_VARIABLES):
            table.define(f"v{i}", 0)
        assert table.lookup(f"v{MAX_VARIABLES - 1}") == 150
        with pytest.raises(AllocationError):
            table.define("one_more", 0)

    def test_redefinition_at_limit_allowed(self):
        table = SymbolTable(max_variables=2)
        table.define("a", 0)
        table.define("b", 0)
        assert table.define("a", 5).address == 249

    def test_iteration_in_definition_order(self):
        table = SymbolTable()
        table.define("x", 0)
        table.define("y", 0)
        assert [v.name for v in table] == ["x", "y"]


class TestNames:
    def test_io_port_preregistered(self):
        table = SymbolTable()
        assert "ioPort" in table
        assert table.lookup("ioPort") == IO_PORT
        assert len(table) == 0

    def test_io_port_cannot_be_defined(self):
        with pytest.raises(ValueError):
            SymbolTable().define("ioPort", 1)

    @pytest.mark.parametrize("name", ["12", "-3", "#101", "$ff"])
    def test_literal_looking_names_rejected(self, name):
        with pytest.raises(ValueError):
            SymbolTable.check_name(name)

    def test_unknown_lookup(self):
        assert SymbolTable().lookup("missing") is None

    def test_exported_names_exist(self):
        from oisc_compiler import symbols
        missing = [n for n in symbols.__all__ if not hasattr(symbols, n)]
        assert missing == []
