"""ez compiler — public API."""

from __future__ import annotations

from .ast import Program
from .build import BuildError as BuildError, Toolchain as Toolchain, build as build
from .emit import GenError as GenError, generate as generate
from .parse import ParseError as ParseError, Parser
from .tokens import EzError as EzError, LexError as LexError, tokenize as tokenize


def parse(source: str | bytes, filename: str = "<input>") -> Program:
    """Tokenize and parse ez source into a Program."""
    tokens = tokenize(source, filename)
    return Parser(tokens).parse_program()


def compile_source(source: str | bytes, filename: str = "<input>") -> str:
    """Compile ez source to NASM assembly text. Raises on the first error."""
    return generate(parse(source, filename))
