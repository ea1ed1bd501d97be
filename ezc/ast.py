"""ez AST — index-resolved program model shared by the parser and generator.

Names are resolved while parsing: locals become indices into the enclosing
function's `LocalStack` and callees become indices into `Program.functions`,
so nothing downstream of the parser looks a name up.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .tokens import Pos


# ============================================================
# SYMBOL TABLE
# ============================================================


@dataclass
class Local:
    """A stack slot: `size` bytes at `offset` from the frame base."""

    size: int
    offset: int
    label: str


class LocalStack:
    """Ordered, append-only table of a function's locals.

    Each new slot starts where the previous one ends; the first starts at 0.
    Inserting a name that already exists returns the existing index.
    """

    def __init__(self) -> None:
        self.locals: list[Local] = []
        self._index: dict[str, int] = {}

    def insert(self, label: str, size: int = 8) -> int:
        existing = self._index.get(label)
        if existing is not None:
            return existing
        offset = self.get_size()
        self.locals.append(Local(size, offset, label))
        self._index[label] = len(self.locals) - 1
        return len(self.locals) - 1

    def find(self, label: str) -> int | None:
        return self._index.get(label)

    def get(self, index: int) -> Local:
        return self.locals[index]

    def get_size(self) -> int:
        """Total bytes occupied by all slots."""
        if not self.locals:
            return 0
        last = self.locals[-1]
        return last.offset + last.size

    def __len__(self) -> int:
        return len(self.locals)

    def __iter__(self):
        return iter(self.locals)


# ============================================================
# EXPRESSIONS
# ============================================================


@dataclass
class Expr:
    """Base for all expressions."""

    pos: Pos


@dataclass
class NumberLit(Expr):
    """Unsigned 64-bit literal (also chars and true/false)."""

    value: int


@dataclass
class StringLit(Expr):
    """Address of string literal `index` in `Program.strings`."""

    index: int


@dataclass
class LocalRef(Expr):
    """Read of local `index` in the enclosing LocalStack."""

    index: int


@dataclass
class BinaryOp(Expr):
    """left op right."""

    op: str
    left: Expr
    right: Expr


@dataclass
class Call(Expr):
    """Call of `Program.functions[function]`."""

    function: int
    args: list[Expr]


# ============================================================
# STATEMENTS
# ============================================================


@dataclass
class Stmt:
    """Base for all statements."""

    pos: Pos


@dataclass
class AssignStmt(Stmt):
    """local = value."""

    local: int
    value: Expr


@dataclass
class ReturnStmt(Stmt):
    """return value."""

    value: Expr


@dataclass
class CallStmt(Stmt):
    """Call evaluated for its side effect."""

    call: Call


@dataclass
class AsmStmt(Stmt):
    """Raw assembly copied into the function body."""

    text: str


# ============================================================
# DECLARATIONS
# ============================================================


@dataclass
class Function:
    """fn name(args) { body }."""

    pos: Pos
    name: str
    locals: LocalStack
    arguments: list[int]
    body: list[Stmt]


@dataclass
class Program:
    """All functions in declaration order, plus the string literal table."""

    filename: str
    functions: list[Function] = field(default_factory=list)
    strings: list[str] = field(default_factory=list)

    def find_function(self, name: str) -> int | None:
        for i, fn in enumerate(self.functions):
            if fn.name == name:
                return i
        return None


def string_label(index: int) -> str:
    return "strltr." + str(index)


# ============================================================
# SERIALIZATION
# ============================================================


def _pos_dict(pos: Pos) -> dict[str, object]:
    return {"line": pos.line, "col": pos.col}


def _expr_to_dict(expr: Expr) -> dict[str, object]:
    if isinstance(expr, NumberLit):
        return {"kind": "number", "value": expr.value}
    if isinstance(expr, StringLit):
        return {"kind": "string", "index": expr.index}
    if isinstance(expr, LocalRef):
        return {"kind": "local", "index": expr.index}
    if isinstance(expr, BinaryOp):
        return {
            "kind": "binary",
            "op": expr.op,
            "left": _expr_to_dict(expr.left),
            "right": _expr_to_dict(expr.right),
        }
    if isinstance(expr, Call):
        return {
            "kind": "call",
            "function": expr.function,
            "args": [_expr_to_dict(a) for a in expr.args],
        }
    raise TypeError("unhandled expression type")


def _stmt_to_dict(stmt: Stmt) -> dict[str, object]:
    if isinstance(stmt, AssignStmt):
        return {"kind": "assign", "local": stmt.local, "value": _expr_to_dict(stmt.value)}
    if isinstance(stmt, ReturnStmt):
        return {"kind": "return", "value": _expr_to_dict(stmt.value)}
    if isinstance(stmt, CallStmt):
        return {"kind": "call", "call": _expr_to_dict(stmt.call)}
    if isinstance(stmt, AsmStmt):
        return {"kind": "asm", "text": stmt.text}
    raise TypeError("unhandled statement type")


def to_dict(program: Program) -> dict[str, object]:
    """Plain-data view of a Program, for dumps and tests."""
    functions: list[dict[str, object]] = []
    for fn in program.functions:
        functions.append(
            {
                "name": fn.name,
                "pos": _pos_dict(fn.pos),
                "locals": [
                    {"label": local.label, "offset": local.offset, "size": local.size}
                    for local in fn.locals
                ],
                "arguments": list(fn.arguments),
                "body": [_stmt_to_dict(s) for s in fn.body],
            }
        )
    return {
        "file": program.filename,
        "functions": functions,
        "strings": list(program.strings),
    }
