"""LocalStack layout tests."""

from ezc.ast import Local, LocalStack


def test_offsets_follow_insertion_order() -> None:
    stack = LocalStack()
    assert stack.insert("a") == 0
    assert stack.insert("b") == 1
    assert stack.insert("c") == 2
    assert [l.offset for l in stack] == [0, 8, 16]
    assert stack.get_size() == 24
    assert len(stack) == 3


def test_empty_stack() -> None:
    stack = LocalStack()
    assert stack.get_size() == 0
    assert len(stack) == 0
    assert stack.find("x") is None


def test_insert_existing_returns_same_index() -> None:
    stack = LocalStack()
    stack.insert("a")
    stack.insert("b")
    assert stack.insert("a") == 0
    assert stack.insert("a", 4) == 0
    assert len(stack) == 2
    assert stack.get_size() == 16
    assert stack.get(0).size == 8


def test_mixed_sizes_pack_tightly() -> None:
    stack = LocalStack()
    stack.insert("flag", 1)
    stack.insert("short", 2)
    stack.insert("int", 4)
    stack.insert("long", 8)
    assert list(stack) == [
        Local(1, 0, "flag"),
        Local(2, 1, "short"),
        Local(4, 3, "int"),
        Local(8, 7, "long"),
    ]
    assert stack.get_size() == 15


def test_find_and_get() -> None:
    stack = LocalStack()
    stack.insert("x")
    stack.insert("y")
    index = stack.find("y")
    assert index == 1
    assert stack.get(index).label == "y"
    assert stack.get(index).offset == 8
