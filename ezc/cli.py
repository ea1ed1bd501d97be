"""ezc CLI — compile .ez files to ELF64 executables."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from .ast import to_dict
from .build import build, run_executable
from .emit import generate
from .parse import Parser
from .tokens import TK_CHAR, TK_EOF, TK_NUMBER, TK_STRING, EzError, Token, tokenize

LOGGER = logging.getLogger("ezc.cli")

PHASES: list[str] = ["tokens", "parse", "asm"]

STDIN_NAME = "<stdin>"

USAGE: str = """\
ezc [OPTIONS] [FILE]

Compile an ez program to an x86-64 Linux executable (via nasm and ld).
Reads stdin when FILE is omitted or '-'.

Options:
  -o, --output PATH   Output stem (or output file with --stop-at)
  --stop-at PHASE     Stop after phase: tokens, parse, asm
  --run               Run the executable and exit with its status
  -v, --verbose       Log toolchain commands
  -h, --help          Show this help message
"""


def read_source(input_file: str | None) -> tuple[bytes, int]:
    """Read raw source from file or stdin. Returns (source, exit_code)."""
    if input_file is None:
        return (sys.stdin.buffer.read(), 0)
    try:
        with open(input_file, "rb") as f:
            return (f.read(), 0)
    except FileNotFoundError:
        print("ezc: " + input_file + ": No such file or directory", file=sys.stderr)
        return (b"", 1)
    except OSError as e:
        print("ezc: " + input_file + ": " + str(e), file=sys.stderr)
        return (b"", 1)


def write_output(output: str, output_file: str | None) -> int:
    """Write output to file or stdout. Returns 0 on success, 1 on error."""
    if output_file is not None:
        try:
            with open(output_file, "w") as f:
                f.write(output)
        except OSError:
            print("ezc: cannot write '" + output_file + "'", file=sys.stderr)
            return 1
        return 0
    sys.stdout.write(output)
    return 0


def format_token(tok: Token) -> str:
    where = str(tok.line) + ":" + str(tok.col)
    if tok.type == TK_EOF:
        return where + " EOF"
    if tok.type == TK_NUMBER or tok.type == TK_CHAR:
        return where + " " + tok.type + " " + str(tok.number)
    if tok.type == TK_STRING:
        return where + " " + tok.type + " " + json.dumps(tok.value)
    return where + " " + tok.type + " " + tok.value


def default_stem(input_file: str | None) -> str:
    if input_file is None:
        return "a"
    return Path(input_file).stem


def main(argv: list[str] | None = None) -> int:
    args = argv if argv is not None else sys.argv[1:]
    input_file: str | None = None
    output_file: str | None = None
    stop_at: str | None = None
    run = False
    verbose = False
    seen_input = False
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            return 0
        elif arg == "-o" or arg == "--output":
            if i + 1 >= len(args):
                print("ezc: " + arg + " requires an argument", file=sys.stderr)
                return 2
            output_file = args[i + 1]
            i += 2
        elif arg == "--stop-at":
            if i + 1 >= len(args):
                print("ezc: --stop-at requires an argument", file=sys.stderr)
                return 2
            stop_at = args[i + 1]
            if stop_at not in PHASES:
                print(
                    "ezc: unknown phase '" + stop_at + "' (expected: " + ", ".join(PHASES) + ")",
                    file=sys.stderr,
                )
                return 2
            i += 2
        elif arg == "--run":
            run = True
            i += 1
        elif arg == "-v" or arg == "--verbose":
            verbose = True
            i += 1
        elif arg.startswith("-") and arg != "-":
            print("ezc: unknown flag '" + arg + "'", file=sys.stderr)
            return 2
        elif not seen_input:
            seen_input = True
            input_file = None if arg == "-" else arg
            i += 1
        else:
            print("ezc: unexpected argument '" + arg + "'", file=sys.stderr)
            return 2

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        stream=sys.stderr,
    )

    if run and stop_at is not None:
        print("ezc: --run cannot be combined with --stop-at", file=sys.stderr)
        return 2

    source, code = read_source(input_file)
    if code != 0:
        return code
    filename = input_file if input_file is not None else STDIN_NAME

    try:
        tokens = tokenize(source, filename)
        if stop_at == "tokens":
            return write_output("".join(format_token(t) + "\n" for t in tokens), output_file)
        program = Parser(tokens).parse_program()
        if stop_at == "parse":
            return write_output(json.dumps(to_dict(program), indent=2) + "\n", output_file)
        text = generate(program)
        if stop_at == "asm":
            return write_output(text, output_file)
        stem = output_file if output_file is not None else default_stem(input_file)
        LOGGER.debug("building %s from %s", stem, filename)
        artifacts = build(text, stem)
    except EzError as e:
        print("ezc: " + str(e), file=sys.stderr)
        return 1

    if run:
        return run_executable(artifacts.exe)
    return 0


if __name__ == "__main__":
    sys.exit(main())
