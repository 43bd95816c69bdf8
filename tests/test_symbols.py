from xexkit.symbols import Symbol, SymbolTable, SymbolType


def test_iteration_is_sorted_by_address():
    table = SymbolTable()
    table.add(Symbol("c", 0x300, 4))
    table.add(Symbol("a", 0x100, 4))
    table.add(Symbol("b", 0x200, 4))
    assert [s.name for s in table] == ["a", "b", "c"]
    assert len(table) == 3


def test_find_exact_address():
    table = SymbolTable([Symbol("func", 0x100, 0x10, SymbolType.FUNCTION)])
    found = table.find(0x100)
    assert found.name == "func"
    assert found.type is SymbolType.FUNCTION


def test_find_inside_range_only_matches_start():
    table = SymbolTable([Symbol("func", 0x100, 0x10)])
    assert table.find(0x104) is None
    assert table.find(0x200) is None


def test_find_skips_empty_symbols():
    table = SymbolTable([Symbol("empty", 0x100, 0)])
    assert table.find(0x100) is None


def test_duplicates_keep_insertion_order_and_find_last():
    table = SymbolTable()
    table.add(Symbol("first", 0x100, 4))
    table.add(Symbol("second", 0x100, 8))
    table.add(Symbol("empty", 0x100, 0))
    assert [s.name for s in table.at_address(0x100)] == ["first", "second", "empty"]
    assert table.find(0x100).name == "second"


def test_at_address_empty():
    table = SymbolTable([Symbol("x", 0x10, 1)])
    assert table.at_address(0x20) == []


def test_symbols_are_mutable():
    table = SymbolTable([Symbol("old", 0x10, 4)])
    table.find(0x10).name = "new"
    assert table.find(0x10).name == "new"