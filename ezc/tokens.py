"""ez tokenizer — lexes source into position-tagged tokens."""

from __future__ import annotations

from dataclasses import dataclass


# Token type constants
TK_NUMBER = "NUMBER"
TK_STRING = "STRING"
TK_CHAR = "CHAR"
TK_IDENT = "IDENT"
TK_OP = "OP"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "asm",
    "false",
    "fn",
    "for",
    "if",
    "return",
    "true",
    "var",
    "while",
}

BINARY_OPS: set[str] = {"+", "-", "*", "/", "&", "|", "^"}

# Two-character operators, checked before single characters
MULTI_OPS: list[str] = ["++", "--"]

SINGLE_OPS: set[str] = BINARY_OPS | {"=", ";", ":", ",", "(", ")", "{", "}"}

STRING_ESCAPES: dict[str, str] = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "\\": "\\",
    '"': '"',
}

CHAR_ESCAPES: dict[str, str] = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "\\": "\\",
    "'": "'",
}

RADIX_NAMES: dict[int, str] = {
    2: "binary",
    8: "octal",
    10: "decimal",
    16: "hexadecimal",
}

U64_MAX = 2**64 - 1


@dataclass(frozen=True)
class Pos:
    """Source position, 1-indexed."""

    file: str
    line: int
    col: int

    def __str__(self) -> str:
        return self.file + ":" + str(self.line) + ":" + str(self.col)


class EzError(Exception):
    """Base for every fatal compilation error."""

    def __init__(self, msg: str, pos: Pos | None = None):
        self.msg: str = msg
        self.pos: Pos | None = pos
        if pos is None:
            super().__init__(msg)
        else:
            super().__init__(str(pos) + ": " + msg)


class LexError(EzError):
    """Error during tokenization."""


class Token:
    """A token with type, value, and position."""

    def __init__(self, type_: str, value: str, pos: Pos, number: int = 0):
        self.type: str = type_
        self.value: str = value
        self.pos: Pos = pos
        self.number: int = number

    @property
    def line(self) -> int:
        return self.pos.line

    @property
    def col(self) -> int:
        return self.pos.col

    def __repr__(self) -> str:
        return (
            "Token("
            + self.type
            + ", "
            + repr(self.value)
            + ", "
            + str(self.line)
            + ", "
            + str(self.col)
            + ")"
        )


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


def _digit_val(c: str) -> int:
    """Value of a digit character in any radix up to 36, -1 if not a digit."""
    if c >= "0" and c <= "9":
        return ord(c) - ord("0")
    if c >= "a" and c <= "z":
        return ord(c) - ord("a") + 10
    if c >= "A" and c <= "Z":
        return ord(c) - ord("A") + 10
    return -1


class Lexer:
    """Cursor over the source text; `next()` yields one token at a time."""

    def __init__(self, source: str | bytes, filename: str = "<input>"):
        self.filename: str = filename
        if isinstance(source, bytes):
            try:
                source = source.decode("utf-8")
            except UnicodeDecodeError:
                raise LexError("source is not valid utf-8", Pos(filename, 1, 1))
        self.src: str = source
        self.cursor: int = 0
        self.line: int = 1
        self.col: int = 1

    # ── Cursor ───────────────────────────────────────────────

    def position(self) -> Pos:
        return Pos(self.filename, self.line, self.col)

    def at_end(self) -> bool:
        return self.cursor >= len(self.src)

    def peek(self, offset: int = 0) -> str:
        idx = self.cursor + offset
        if idx >= len(self.src):
            return ""
        return self.src[idx]

    def bump(self) -> str:
        """Consume one character, keeping line and column in step."""
        c = self.src[self.cursor]
        self.cursor += 1
        if c == "\n":
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return c

    def error(self, msg: str, pos: Pos | None = None) -> LexError:
        return LexError(msg, pos if pos is not None else self.position())

    # ── Tokens ───────────────────────────────────────────────

    def next(self) -> Token | None:
        """Return the next token, or None once the source is exhausted."""
        while not self.at_end() and self.peek().isspace():
            self.bump()
        if self.at_end():
            return None

        c = self.peek()
        if _is_digit(c):
            return self._read_number()
        if _is_alpha(c):
            return self._read_word()
        if c == '"':
            return self._read_string()
        if c == "'":
            return self._read_char()

        start = self.position()
        for op in MULTI_OPS:
            if self.src.startswith(op, self.cursor):
                self.bump()
                self.bump()
                return Token(TK_OP, op, start)
        if c in SINGLE_OPS:
            self.bump()
            return Token(TK_OP, c, start)
        raise self.error("unknown token " + repr(c))

    def _read_digits(self, radix: int) -> tuple[str, int]:
        """Read an alphanumeric run as a number in `radix`. Returns (raw, value)."""
        start = self.cursor
        value = 0
        while not self.at_end() and _is_alnum(self.peek()):
            digit = _digit_val(self.peek())
            if digit < 0 or digit >= radix:
                raise self.error("invalid " + RADIX_NAMES[radix] + " number")
            value = value * radix + digit
            self.bump()
        return self.src[start : self.cursor], value

    def _read_number(self) -> Token:
        start = self.position()
        start_cursor = self.cursor
        _, value = self._read_digits(10)
        if self.peek() == "#":
            radix = value
            if radix not in RADIX_NAMES:
                raise self.error("unknown numerical base " + str(radix), start)
            self.bump()
            raw, value = self._read_digits(radix)
            if raw == "":
                raise self.error("missing digits after '" + str(radix) + "#'")
        if value > U64_MAX:
            raise self.error("number literal does not fit in 64 bits", start)
        raw = self.src[start_cursor : self.cursor]
        return Token(TK_NUMBER, raw, start, value)

    def _read_word(self) -> Token:
        start = self.position()
        start_cursor = self.cursor
        while not self.at_end() and _is_alnum(self.peek()):
            self.bump()
        word = self.src[start_cursor : self.cursor]
        if word in KEYWORDS:
            return Token(word, word, start)
        return Token(TK_IDENT, word, start)

    def _read_escape(self, start: Pos, what: str, table: dict[str, str]) -> str:
        """Resolve the character after a backslash. Unknown escapes yield ''."""
        if self.at_end():
            raise self.error("unterminated " + what + " literal", start)
        c = self.bump()
        return table.get(c, "")

    def _read_string(self) -> Token:
        start = self.position()
        self.bump()  # opening "
        chars: list[str] = []
        while not self.at_end() and self.peek() != '"':
            c = self.bump()
            if c == "\\":
                chars.append(self._read_escape(start, "string", STRING_ESCAPES))
            else:
                chars.append(c)
        if self.at_end():
            raise self.error("unterminated string literal", start)
        self.bump()  # closing "
        return Token(TK_STRING, "".join(chars), start)

    def _read_char(self) -> Token:
        start = self.position()
        self.bump()  # opening '
        if self.at_end():
            raise self.error("unterminated character literal", start)
        c = self.bump()
        if c == "'":
            raise self.error("empty character literal", start)
        if c == "\\":
            c = self._read_escape(start, "character", CHAR_ESCAPES)
            if c == "":
                raise self.error("empty character literal", start)
        if self.at_end() or self.peek() != "'":
            raise self.error("expected closing ' in character literal", start)
        self.bump()  # closing '
        return Token(TK_CHAR, c, start, ord(c))


def tokenize(source: str | bytes, filename: str = "<input>") -> list[Token]:
    """Tokenize ez source into a flat list ending with TK_EOF."""
    lexer = Lexer(source, filename)
    tokens: list[Token] = []
    while True:
        tok = lexer.next()
        if tok is None:
            break
        tokens.append(tok)
    tokens.append(Token(TK_EOF, "", lexer.position()))
    return tokens
