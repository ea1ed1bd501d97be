"""ez code generator: Program → NASM assembly for x86-64 Linux (ELF64).

Frame layout per function (rbp-relative):
- [rbp + 16 + 8*(n-1-i)]  argument i of n, pushed left to right by the caller
- [rbp + 8]               return address
- [rbp]                   caller's rbp
- [rbp - (offset+size)]   local slot, one per LocalStack entry

Expressions are lowered with two working registers (rcx, rdx) swapped on
recursion. That is enough as long as no binary node has two nested operands;
such expressions are rejected rather than miscompiled.
"""

from __future__ import annotations

from .ast import (
    AsmStmt,
    AssignStmt,
    BinaryOp,
    Call,
    CallStmt,
    Expr,
    Function,
    Local,
    LocalRef,
    NumberLit,
    Program,
    ReturnStmt,
    Stmt,
    StringLit,
    string_label,
)
from .tokens import EzError

SYS_EXIT = 0x3C

ENTRY = "main"
THUNK = "_start"

STACK_ALIGN = 16

# Pushed return address + saved rbp
ARGS_BASE = 16

QUAD = 8


class GenError(EzError):
    """Code path the generator does not implement."""


class Register:
    """A general-purpose register, addressable at 1/2/4/8-byte widths."""

    def __init__(self, byte: str, word: str, dword: str, qword: str):
        self.views: dict[int, str] = {1: byte, 2: word, 4: dword, 8: qword}

    def view(self, size: int) -> str:
        name = self.views.get(size)
        if name is None:
            raise GenError("invalid register size " + str(size))
        return name

    def __str__(self) -> str:
        return self.views[QUAD]


RAX = Register("al", "ax", "eax", "rax")
RCX = Register("cl", "cx", "ecx", "rcx")
RDX = Register("dl", "dx", "edx", "rdx")
RSP = Register("spl", "sp", "esp", "rsp")
RBP = Register("bpl", "bp", "ebp", "rbp")
RDI = Register("dil", "di", "edi", "rdi")

# Return value and first syscall argument
RETURN_REG = RAX
SYSCALL_ARG_REG = RDI

PRIMARY = RCX
SCRATCH = RDX

STORAGE_CLASSES: dict[int, str] = {
    1: "byte",
    2: "word",
    4: "dword",
    8: "qword",
}

INSTRUCTIONS: dict[str, str] = {
    "+": "add",
    "-": "sub",
    "*": "imul",
    "&": "and",
    "|": "or",
    "^": "xor",
}


def storage_class(local: Local) -> str:
    name = STORAGE_CLASSES.get(local.size)
    if name is None:
        raise GenError(
            "unknown storage size " + str(local.size) + " for '" + local.label + "'"
        )
    return name


def frame_size(fn: Function) -> int:
    """Bytes reserved below rbp: locals plus 8, rounded up to 16."""
    size = fn.locals.get_size() + 8
    return (size + STACK_ALIGN - 1) // STACK_ALIGN * STACK_ALIGN


def is_leaf(expr: Expr) -> bool:
    """True for expressions that load into a register without clobbering others."""
    return isinstance(expr, (NumberLit, StringLit, LocalRef))


def symbol(name: str) -> str:
    """Function label; the `$` prefix lets NASM accept mnemonics and register names."""
    return "$" + name


def slot(local: Local) -> str:
    return "[" + str(RBP) + " - " + hex(local.offset + local.size) + "]"


def _nasm_bytes(text: str) -> str:
    data = [str(b) for b in text.encode("utf-8")]
    data.append("0")
    return ", ".join(data)


def generate(program: Program) -> str:
    """Render a Program as NASM assembly text."""
    return _Generator(program).emit_program()


class _Generator:
    _INDENT: str = "    "

    def __init__(self, program: Program) -> None:
        self.program: Program = program
        self._lines: list[str] = []
        self._fn: Function | None = None
        # Argument bytes pushed by calls still being set up
        self._pushed: int = 0

    # ── Lines ───────────────────────────────────────────────

    def _emit(self, instruction: str, comment: str = "") -> None:
        line = self._INDENT + instruction
        if comment:
            line += "\t; " + comment
        self._lines.append(line)

    def _label(self, name: str) -> None:
        self._lines.append(name + ":")

    # ── Program ─────────────────────────────────────────────

    def emit_program(self) -> str:
        self._lines = ["; Source File: " + self.program.filename, ""]
        self._lines.append("section .data")
        for i, text in enumerate(self.program.strings):
            self._lines.append(string_label(i) + ": db " + _nasm_bytes(text))
        self._lines.append("")
        self._lines.append("section .text")
        self._emit("global " + THUNK)
        self._label(THUNK)
        self._emit("call " + symbol(ENTRY))
        self._emit("mov " + str(SYSCALL_ARG_REG) + ", " + str(RETURN_REG))
        self._emit("mov " + str(RETURN_REG) + ", " + hex(SYS_EXIT))
        self._emit("syscall")
        for fn in self.program.functions:
            self._lines.append("")
            self._emit_function(fn)
        return "\n".join(self._lines) + "\n"

    # ── Functions ───────────────────────────────────────────

    def _emit_function(self, fn: Function) -> None:
        self._fn = fn
        self._pushed = 0
        self._label(symbol(fn.name))
        self._emit("push " + str(RBP))
        self._emit("mov " + str(RBP) + ", " + str(RSP))
        self._emit("sub " + str(RSP) + ", " + hex(frame_size(fn)))

        count = len(fn.arguments)
        for i, index in enumerate(fn.arguments):
            local = fn.locals.get(index)
            width = storage_class(local)
            incoming = "[" + str(RBP) + " + " + hex(ARGS_BASE + QUAD * (count - 1 - i)) + "]"
            self._emit("mov " + str(RETURN_REG) + ", qword " + incoming)
            self._emit(
                "mov " + width + " " + slot(local) + ", " + RETURN_REG.view(local.size),
                local.label,
            )

        for stmt in fn.body:
            self._emit_stmt(stmt)
        if not fn.body or not isinstance(fn.body[-1], ReturnStmt):
            self._emit("xor " + str(RETURN_REG) + ", " + str(RETURN_REG))

        self._label(".return")
        self._emit("mov " + str(RSP) + ", " + str(RBP))
        self._emit("pop " + str(RBP))
        self._emit("ret")

    # ── Statements ──────────────────────────────────────────

    def _emit_stmt(self, stmt: Stmt) -> None:
        fn = self._fn
        assert fn is not None
        if isinstance(stmt, AssignStmt):
            local = fn.locals.get(stmt.local)
            width = storage_class(local)
            self._emit_expr(stmt.value, PRIMARY, SCRATCH)
            self._emit(
                "mov " + width + " " + slot(local) + ", " + PRIMARY.view(local.size),
                local.label,
            )
            return
        if isinstance(stmt, ReturnStmt):
            self._emit_expr(stmt.value, PRIMARY, SCRATCH)
            self._emit("mov " + str(RETURN_REG) + ", " + str(PRIMARY))
            self._emit("jmp .return")
            return
        if isinstance(stmt, CallStmt):
            self._emit_expr(stmt.call, PRIMARY, SCRATCH)
            return
        if isinstance(stmt, AsmStmt):
            for line in stmt.text.split("\n"):
                if line.strip():
                    self._emit(line.strip())
            return
        raise GenError("unhandled statement type " + type(stmt).__name__, stmt.pos)

    # ── Expressions ─────────────────────────────────────────

    def _emit_expr(self, expr: Expr, reg: Register, alt: Register) -> None:
        """Leave the value of `expr` in `reg`; `alt` may be clobbered."""
        fn = self._fn
        assert fn is not None
        if isinstance(expr, NumberLit):
            self._emit("mov " + str(reg) + ", " + hex(expr.value))
            return
        if isinstance(expr, StringLit):
            self._emit("mov " + str(reg) + ", " + string_label(expr.index))
            return
        if isinstance(expr, LocalRef):
            self._emit_load(fn.locals.get(expr.index), reg)
            return
        if isinstance(expr, BinaryOp):
            self._emit_binary(expr, reg, alt)
            return
        if isinstance(expr, Call):
            self._emit_call(expr, reg, alt)
            return
        raise GenError("unhandled expression type " + type(expr).__name__, expr.pos)

    def _emit_load(self, local: Local, reg: Register) -> None:
        width = storage_class(local)
        if local.size < 4:
            self._emit("movzx " + str(reg) + ", " + width + " " + slot(local), local.label)
        else:
            self._emit(
                "mov " + reg.view(local.size) + ", " + width + " " + slot(local),
                local.label,
            )

    def _emit_binary(self, expr: BinaryOp, reg: Register, alt: Register) -> None:
        instruction = INSTRUCTIONS.get(expr.op)
        if instruction is None:
            raise GenError("operator '" + expr.op + "' is not implemented", expr.pos)
        left_nested = not is_leaf(expr.left)
        right_nested = not is_leaf(expr.right)
        if left_nested and right_nested:
            raise GenError(
                "expression needs more than two working registers; "
                "split it with a variable",
                expr.pos,
            )
        if right_nested:
            # Nested side first, into alt; the leaf then lands in reg untouched
            self._emit_expr(expr.right, alt, reg)
            self._emit_expr(expr.left, reg, alt)
        else:
            self._emit_expr(expr.left, reg, alt)
            self._emit_expr(expr.right, alt, reg)
        self._emit(instruction + " " + str(reg) + ", " + str(alt))

    def _emit_call(self, expr: Call, reg: Register, alt: Register) -> None:
        callee = self.program.functions[expr.function]
        if len(expr.args) != len(callee.arguments):
            raise GenError("argument count mismatch calling '" + callee.name + "'", expr.pos)
        pushed = QUAD * len(expr.args)
        # rsp is 16-aligned in a body once outstanding pushes are counted
        padding = (STACK_ALIGN - (self._pushed + pushed) % STACK_ALIGN) % STACK_ALIGN
        if padding:
            self._emit("sub " + str(RSP) + ", " + hex(padding))
            self._pushed += padding
        for arg, index in zip(expr.args, callee.arguments):
            self._emit_expr(arg, reg, alt)
            self._emit("push " + str(reg), callee.locals.get(index).label)
            self._pushed += QUAD
        self._emit("call " + symbol(callee.name))
        released = pushed + padding
        if released:
            self._emit("add " + str(RSP) + ", " + hex(released))
            self._pushed -= released
        self._emit("mov " + str(reg) + ", " + str(RETURN_REG))
