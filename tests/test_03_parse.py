"""Parser tests: .tests files for accept/reject, direct checks for tree shape."""

from pathlib import Path

import pytest

from ezc import parse
from ezc.ast import (
    AsmStmt,
    AssignStmt,
    BinaryOp,
    Call,
    CallStmt,
    LocalRef,
    NumberLit,
    ReturnStmt,
    StringLit,
    to_dict,
)
from ezc.parse import ParseError
from ezc.tokens import EzError

PARSE_DIR = Path(__file__).parent / "03_parse"


def parse_test_file(path: Path) -> list[tuple[str, str, str]]:
    """Parse .tests file into (name, input, expected) tuples.

    Expected is one of: 'ok', 'error: <message>'
    """
    lines = path.read_text().split("\n")
    result: list[tuple[str, str, str]] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("=== "):
            test_name = line[4:].strip()
            i += 1
            input_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                input_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            expected_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                expected_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            test_input = "\n".join(input_lines)
            expected = "\n".join(expected_lines).strip()
            result.append((test_name, test_input, expected))
        else:
            i += 1
    return result


def discover_parse_tests() -> list[tuple[str, str, str]]:
    """Find all parse tests, returns (test_id, input, expected)."""
    results = []
    for test_file in sorted(PARSE_DIR.glob("*.tests")):
        for name, input_code, expected in parse_test_file(test_file):
            results.append((f"{test_file.stem}/{name}", input_code, expected))
    return results


def pytest_generate_tests(metafunc):
    """Parametrize tests over parse test files."""
    if "parse_input" in metafunc.fixturenames:
        params = [
            pytest.param(input_code, expected, id=test_id)
            for test_id, input_code, expected in discover_parse_tests()
        ]
        metafunc.parametrize("parse_input,parse_expected", params)


def test_parse(parse_input: str, parse_expected: str) -> None:
    """Verify the parser accepts or rejects with the expected message."""
    if parse_expected == "ok":
        parse(parse_input)
        return
    assert parse_expected.startswith("error: "), "bad expectation " + parse_expected
    message = parse_expected[len("error: ") :]
    with pytest.raises(EzError) as exc:
        parse(parse_input)
    assert message in str(exc.value)


# ── Tree shape ─────────────────────────────────────────────


def return_value(source: str):
    program = parse(source)
    body = program.functions[-1].body
    assert isinstance(body[-1], ReturnStmt)
    return body[-1].value


def shape(expr) -> object:
    """Compact nested-tuple form of an expression."""
    if isinstance(expr, NumberLit):
        return expr.value
    if isinstance(expr, LocalRef):
        return ("local", expr.index)
    if isinstance(expr, StringLit):
        return ("str", expr.index)
    if isinstance(expr, BinaryOp):
        return (expr.op, shape(expr.left), shape(expr.right))
    if isinstance(expr, Call):
        return ("call", expr.function, [shape(a) for a in expr.args])
    raise TypeError(expr)


@pytest.mark.parametrize(
    "expr,expected",
    [
        ("1 + 2 * 3", ("+", 1, ("*", 2, 3))),
        ("2 * 3 + 4", ("+", ("*", 2, 3), 4)),
        ("(1 + 2) * 3", ("*", ("+", 1, 2), 3)),
        ("1 | 2 ^ 3 & 4", ("|", 1, ("^", 2, ("&", 3, 4)))),
        ("1 & 2 | 3", ("|", ("&", 1, 2), 3)),
        ("4 + 5 & 6", ("&", ("+", 4, 5), 6)),
        ("((7))", 7),
    ],
)
def test_precedence(expr: str, expected: object) -> None:
    assert shape(return_value("fn main() { return " + expr + "; }")) == expected


def test_equal_precedence_groups_right() -> None:
    assert shape(return_value("fn main() { return 1 - 2 - 3; }")) == (
        "-",
        1,
        ("-", 2, 3),
    )
    assert shape(return_value("fn main() { return 8 / 4 * 2; }")) == (
        "/",
        8,
        ("*", 4, 2),
    )


def test_parentheses_force_left_grouping() -> None:
    assert shape(return_value("fn main() { return (1 - 2) - 3; }")) == (
        "-",
        ("-", 1, 2),
        3,
    )


def test_literal_operands() -> None:
    value = return_value("fn main() { return 'A' + true + false + 16#10; }")
    assert shape(value) == ("+", 65, ("+", 1, ("+", 0, 16)))


def test_locals_resolve_to_indices() -> None:
    program = parse(
        "fn f(a, b) {\n"
        "  var c = a + b;\n"
        "  c = c * 2;\n"
        "  return c;\n"
        "}\n"
        "fn main() { return f(1, 2); }\n"
    )
    fn = program.functions[0]
    assert fn.arguments == [0, 1]
    assert [l.label for l in fn.locals] == ["a", "b", "c"]
    assert isinstance(fn.body[0], AssignStmt)
    assert fn.body[0].local == 2
    assert shape(fn.body[0].value) == ("+", ("local", 0), ("local", 1))
    assert shape(fn.body[1].value) == ("*", ("local", 2), 2)


def test_calls_resolve_to_function_indices() -> None:
    program = parse(
        "fn add(a, b) { return a + b; }\n"
        "fn twice(x) { return add(x, x); }\n"
        "fn main() { return twice(add(1, 2)); }\n"
    )
    value = program.functions[2].body[0].value
    assert shape(value) == ("call", 1, [("call", 0, [1, 2])])
    assert program.find_function("twice") == 1
    assert program.find_function("nope") is None


def test_call_inside_binary() -> None:
    value = return_value(
        "fn one() { return 1; }\nfn main() { return 2 * one() + 3; }"
    )
    assert shape(value) == ("+", ("*", 2, ("call", 0, [])), 3)


def test_increment_desugars_to_assignment() -> None:
    program = parse("fn main() {\n  var i = 5;\n  i++;\n  i--;\n  return i;\n}")
    body = program.functions[0].body
    assert shape(body[1].value) == ("+", ("local", 0), 1)
    assert shape(body[2].value) == ("-", ("local", 0), 1)
    assert body[1].local == body[2].local == 0


def test_string_literals_get_one_entry_per_occurrence() -> None:
    program = parse(
        'fn main() {\n  var a = "hi";\n  var b = "hi";\n  var c = "yo";\n  return 0;\n}'
    )
    assert program.strings == ["hi", "hi", "yo"]
    body = program.functions[0].body
    assert [shape(s.value) for s in body[:3]] == [("str", 0), ("str", 1), ("str", 2)]


def test_call_statement_and_asm() -> None:
    program = parse(
        'fn f() { return 1; }\nfn main() {\n  f();\n  asm "nop\\nnop";\n}'
    )
    body = program.functions[1].body
    assert isinstance(body[0], CallStmt)
    assert body[0].call.function == 0
    assert isinstance(body[1], AsmStmt)
    assert body[1].text == "nop\nnop"


def test_error_positions_use_filename() -> None:
    with pytest.raises(ParseError) as exc:
        parse("fn main() {\n  return q;\n}", "prog.ez")
    assert str(exc.value) == "prog.ez:2:10: undeclared variable 'q'"
    assert exc.value.msg == "undeclared variable 'q'"


def test_to_dict() -> None:
    program = parse("fn main() {\n  var x = 1 + 2;\n  return x;\n}", "m.ez")
    data = to_dict(program)
    assert data["file"] == "m.ez"
    fn = data["functions"][0]
    assert fn["name"] == "main"
    assert fn["pos"] == {"line": 1, "col": 1}
    assert fn["locals"] == [{"label": "x", "offset": 0, "size": 8}]
    assert fn["body"][0] == {
        "kind": "assign",
        "local": 0,
        "value": {
            "kind": "binary",
            "op": "+",
            "left": {"kind": "number", "value": 1},
            "right": {"kind": "number", "value": 2},
        },
    }
    assert fn["body"][1] == {"kind": "return", "value": {"kind": "local", "index": 0}}
