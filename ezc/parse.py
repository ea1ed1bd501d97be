"""ez parser — one-token lookahead descent with a shunting-yard expression core."""

from __future__ import annotations

from .ast import (
    AsmStmt,
    AssignStmt,
    BinaryOp,
    Call,
    CallStmt,
    Expr,
    Function,
    LocalRef,
    LocalStack,
    NumberLit,
    Program,
    ReturnStmt,
    Stmt,
    StringLit,
)
from .tokens import (
    TK_CHAR,
    TK_EOF,
    TK_IDENT,
    TK_NUMBER,
    TK_OP,
    TK_STRING,
    EzError,
    Token,
)

# Higher binds tighter
PRECEDENCE: dict[str, int] = {
    "*": 5,
    "/": 5,
    "+": 4,
    "-": 4,
    "&": 3,
    "^": 2,
    "|": 1,
}

LOCAL_SIZE = 8

UNSUPPORTED_STATEMENTS: set[str] = {"if", "while", "for"}

# Labels the generated program defines itself
RESERVED_FUNCTIONS: set[str] = {"_start"}


class ParseError(EzError):
    """Syntax or name-resolution error with location info."""


def describe(tok: Token) -> str:
    if tok.type == TK_EOF:
        return "end of file"
    if tok.type == TK_STRING:
        return "string literal"
    if tok.type == TK_CHAR:
        return "character literal"
    return "'" + tok.value + "'"


class Parser:
    """Parser for ez over a fully materialized token list.

    `current` is the last consumed token and `lookahead` the next one; both
    move together in `advance()`.
    """

    def __init__(self, tokens: list[Token]):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.current: Token | None = None
        self.lookahead: Token = tokens[0]
        self.program: Program = Program(tokens[-1].pos.file)
        self.locals: LocalStack = LocalStack()

    # ── Helpers ──────────────────────────────────────────────

    def advance(self) -> Token:
        self.current = self.lookahead
        if self.pos + 1 < len(self.tokens):
            self.pos += 1
        self.lookahead = self.tokens[self.pos]
        return self.current

    @staticmethod
    def _is(tok: Token | None, value: str) -> bool:
        if tok is None:
            return False
        return tok.type == value or (tok.type == TK_OP and tok.value == value)

    def at(self, value: str) -> bool:
        return self._is(self.lookahead, value)

    def at_type(self, type_: str) -> bool:
        return self.lookahead.type == type_

    def expect(self, value: str) -> Token:
        if not self.at(value):
            raise self.error("expected '" + value + "', got " + describe(self.lookahead))
        return self.advance()

    def expect_ident(self, what: str) -> Token:
        if not self.at_type(TK_IDENT):
            raise self.error("expected " + what + ", got " + describe(self.lookahead))
        return self.advance()

    def error(self, msg: str, tok: Token | None = None) -> ParseError:
        if tok is None:
            tok = self.lookahead
        return ParseError(msg, tok.pos)

    def _missing(self) -> ParseError:
        """Error for an expression that stopped where an operand was due."""
        prev = self.current
        if prev is not None and prev.type == TK_OP and prev.value in PRECEDENCE:
            return self.error("missing operand after '" + prev.value + "'")
        return self.error("missing expression")

    # ── Top Level ────────────────────────────────────────────

    def parse_program(self) -> Program:
        while not self.at_type(TK_EOF):
            self.program.functions.append(self.parse_function())
        if not self.program.functions:
            raise self.error("empty program: define a main function")
        if self.program.find_function("main") is None:
            raise self.error("no entry point: missing main function")
        return self.program

    def parse_function(self) -> Function:
        if not self.at("fn"):
            raise self.error("expected function declaration, got " + describe(self.lookahead))
        fn_tok = self.advance()
        name_tok = self.expect_ident("function name")
        if name_tok.value in RESERVED_FUNCTIONS:
            raise self.error("function name '" + name_tok.value + "' is reserved", name_tok)
        if self.program.find_function(name_tok.value) is not None:
            raise self.error("duplicate function '" + name_tok.value + "'", name_tok)
        if self.at(":"):
            self.advance()
        self.locals = LocalStack()
        arguments = self.parse_arguments()
        body = self.parse_scope()
        return Function(fn_tok.pos, name_tok.value, self.locals, arguments, body)

    def parse_arguments(self) -> list[int]:
        self.expect("(")
        arguments: list[int] = []
        while True:
            tok = self.lookahead
            if tok.type == TK_IDENT:
                self.advance()
                arguments.append(self.locals.insert(tok.value, LOCAL_SIZE))
                if self.at(","):
                    self.advance()
                elif self.at(")"):
                    pass
                elif self.at_type(TK_IDENT):
                    raise self.error("expected ',' between arguments")
                else:
                    raise self.error(
                        "expected ',' or ')', got " + describe(self.lookahead)
                    )
            elif self.at(")"):
                # Legal only right after '(' or an argument name, not after ','
                if self.current is not None and (
                    self.current.type == TK_IDENT or self._is(self.current, "(")
                ):
                    break
                raise self.error("expected argument name after ','")
            elif tok.type == TK_EOF:
                raise self.error("expected ')' but reached end of file")
            else:
                raise self.error("expected argument name, got " + describe(tok))
        self.expect(")")
        return arguments

    def parse_scope(self) -> list[Stmt]:
        self.expect("{")
        body: list[Stmt] = []
        while True:
            stmt = self.parse_statement()
            if stmt is None:
                break
            body.append(stmt)
        self.expect("}")
        return body

    # ── Statements ───────────────────────────────────────────

    def parse_statement(self) -> Stmt | None:
        tok = self.lookahead
        if self._is(tok, "}"):
            return None
        if tok.type == "return":
            self.advance()
            value = self.parse_expression()
            self.expect(";")
            return ReturnStmt(tok.pos, value)
        if tok.type == "var":
            return self.parse_var()
        if tok.type == "asm":
            self.advance()
            if not self.at_type(TK_STRING):
                raise self.error("expected string after 'asm', got " + describe(self.lookahead))
            text = self.advance().value
            self.expect(";")
            return AsmStmt(tok.pos, text)
        if tok.type == TK_IDENT:
            return self.parse_name_statement()
        if tok.type in UNSUPPORTED_STATEMENTS:
            raise self.error("'" + tok.type + "' statements are not supported")
        if tok.type == TK_EOF:
            raise self.error("expected '}' but reached end of file")
        raise self.error("expected statement, got " + describe(tok))

    def parse_var(self) -> Stmt:
        var_tok = self.advance()
        name_tok = self.expect_ident("variable name")
        if self.locals.find(name_tok.value) is not None:
            raise self.error("variable '" + name_tok.value + "' already declared", name_tok)
        self.expect("=")
        value = self.parse_expression()
        self.expect(";")
        index = self.locals.insert(name_tok.value, LOCAL_SIZE)
        return AssignStmt(var_tok.pos, index, value)

    def _resolve_local(self, name_tok: Token) -> int:
        index = self.locals.find(name_tok.value)
        if index is None:
            raise self.error("undeclared variable '" + name_tok.value + "'", name_tok)
        return index

    def parse_name_statement(self) -> Stmt:
        name_tok = self.advance()
        if self.at("="):
            index = self._resolve_local(name_tok)
            self.advance()
            value = self.parse_expression()
            self.expect(";")
            return AssignStmt(name_tok.pos, index, value)
        if self.at("++") or self.at("--"):
            index = self._resolve_local(name_tok)
            op_tok = self.advance()
            self.expect(";")
            op = "+" if op_tok.value == "++" else "-"
            value = BinaryOp(
                op_tok.pos,
                op,
                LocalRef(name_tok.pos, index),
                NumberLit(op_tok.pos, 1),
            )
            return AssignStmt(name_tok.pos, index, value)
        if self.at("("):
            call = self.parse_call(name_tok)
            self.expect(";")
            return CallStmt(name_tok.pos, call)
        raise self.error(
            "expected '=', '++', '--' or '(' after '"
            + name_tok.value
            + "', got "
            + describe(self.lookahead)
        )

    # ── Expressions ──────────────────────────────────────────

    def parse_call(self, name_tok: Token) -> Call:
        """Parse `(args)` after a callee name; the callee must already exist."""
        index = self.program.find_function(name_tok.value)
        if index is None:
            raise self.error("call to undefined function '" + name_tok.value + "'", name_tok)
        self.expect("(")
        args: list[Expr] = []
        if self.at(")"):
            self.advance()
        else:
            while True:
                args.append(self.parse_expression(in_call=True))
                if self.at(","):
                    self.advance()
                    continue
                self.expect(")")
                break
        expected = len(self.program.functions[index].arguments)
        if len(args) != expected:
            raise self.error(
                "function '"
                + name_tok.value
                + "' expects "
                + str(expected)
                + " argument"
                + ("" if expected == 1 else "s")
                + ", got "
                + str(len(args)),
                name_tok,
            )
        return Call(name_tok.pos, index, args)

    def _operand(self, tok: Token) -> Expr:
        """Build the operand for an already consumed literal or name token."""
        if tok.type == TK_NUMBER or tok.type == TK_CHAR:
            return NumberLit(tok.pos, tok.number)
        if tok.type == "true":
            return NumberLit(tok.pos, 1)
        if tok.type == "false":
            return NumberLit(tok.pos, 0)
        if tok.type == TK_STRING:
            self.program.strings.append(tok.value)
            return StringLit(tok.pos, len(self.program.strings) - 1)
        if self.at("("):
            return self.parse_call(tok)
        return LocalRef(tok.pos, self._resolve_local(tok))

    def parse_expression(self, in_call: bool = False) -> Expr:
        """Shunting-yard over the token stream.

        Stops before ';' in statement context, or before ',' / an unmatched
        ')' when parsing a call argument. An incoming operator only pops
        stack operators of strictly greater precedence, so equal-precedence
        chains group to the right.
        """
        queue: list[Expr | Token] = []
        stack: list[Token] = []
        expect_operand = True
        while True:
            tok = self.lookahead
            if tok.type in (TK_NUMBER, TK_CHAR, TK_STRING, TK_IDENT, "true", "false"):
                if not expect_operand:
                    raise self.error("missing operator before " + describe(tok))
                self.advance()
                queue.append(self._operand(tok))
                expect_operand = False
            elif tok.type == TK_OP and tok.value in PRECEDENCE:
                if expect_operand:
                    raise self._missing()
                prec = PRECEDENCE[tok.value]
                while stack and stack[-1].value != "(" and PRECEDENCE[stack[-1].value] > prec:
                    queue.append(stack.pop())
                stack.append(self.advance())
                expect_operand = True
            elif self._is(tok, "("):
                if not expect_operand:
                    raise self.error("missing operator before '('")
                stack.append(self.advance())
            elif self._is(tok, ")"):
                if expect_operand:
                    raise self._missing()
                matched = False
                while stack:
                    top = stack.pop()
                    if top.value == "(":
                        matched = True
                        break
                    queue.append(top)
                if not matched:
                    if in_call:
                        break
                    raise self.error("unmatched parenthesis")
                self.advance()
            elif self._is(tok, ";"):
                if in_call:
                    raise self.error("expected ',' or ')' in call arguments, got ';'")
                break
            elif self._is(tok, ","):
                if not in_call:
                    raise self.error("unexpected ',' in expression")
                break
            elif tok.type == TK_EOF:
                raise self.error("expected expression but reached end of file")
            else:
                raise self.error("unexpected " + describe(tok) + " in expression")

        if expect_operand:
            raise self._missing()
        while stack:
            top = stack.pop()
            if top.value == "(":
                raise self.error("unmatched parenthesis", top)
            queue.append(top)
        return self._reduce(queue)

    def _reduce(self, queue: list[Expr | Token]) -> Expr:
        """Fold a postfix queue into a single expression tree."""
        operands: list[Expr] = []
        for item in queue:
            if isinstance(item, Token):
                if len(operands) < 2:
                    raise self.error("missing operand for '" + item.value + "'", item)
                right = operands.pop()
                left = operands.pop()
                operands.append(BinaryOp(item.pos, item.value, left, right))
            else:
                operands.append(item)
        if not operands:
            raise self.error("missing expression")
        if len(operands) != 1:
            raise self.error("missing operator")
        return operands[0]
