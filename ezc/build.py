"""Build driver: hand generated assembly to nasm and ld.

`Toolchain` exposes `assemble(text) -> bytes` and `link(obj) -> bytes`;
tests substitute a fake.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from .tokens import EzError

LOGGER = logging.getLogger("ezc.build")


class BuildError(EzError):
    """Assembler or linker failure; `stderr` is the tool's output verbatim."""

    def __init__(self, stage: str, stderr: str):
        self.stage: str = stage
        self.stderr: str = stderr
        super().__init__(stage + " failed\n" + stderr.rstrip("\n"))


@dataclass
class Toolchain:
    """Command templates for assembling and linking.

    Templates are formatted with `asm`, `obj` and `exe` paths.
    """

    assembler: list[str] = field(
        default_factory=lambda: ["nasm", "-f", "elf64", "-o", "{obj}", "{asm}"]
    )
    linker: list[str] = field(default_factory=lambda: ["ld", "-o", "{exe}", "{obj}"])

    def _run(self, stage: str, template: list[str], paths: dict[str, Path]) -> None:
        cmd = [arg.format(**{k: str(v) for k, v in paths.items()}) for arg in template]
        LOGGER.debug("[CMD] %s", " ".join(map(shlex.quote, cmd)))
        try:
            result = subprocess.run(cmd, capture_output=True)
        except FileNotFoundError:
            raise BuildError(stage, cmd[0] + ": command not found")
        except OSError as e:
            raise BuildError(stage, cmd[0] + ": " + str(e))
        if result.returncode != 0:
            raise BuildError(stage, result.stderr.decode(errors="replace"))

    def assemble(self, text: str) -> bytes:
        """Assemble NASM source into ELF64 object bytes."""
        with tempfile.TemporaryDirectory(prefix="ezc-") as tmp:
            asm = Path(tmp) / "out.s"
            obj = Path(tmp) / "out.o"
            asm.write_text(text)
            self._run("assemble", self.assembler, {"asm": asm, "obj": obj})
            return obj.read_bytes()

    def link(self, obj: bytes) -> bytes:
        """Link one object into a static executable image."""
        with tempfile.TemporaryDirectory(prefix="ezc-") as tmp:
            obj_path = Path(tmp) / "out.o"
            exe = Path(tmp) / "out"
            obj_path.write_bytes(obj)
            self._run("link", self.linker, {"obj": obj_path, "exe": exe})
            return exe.read_bytes()


@dataclass
class Artifacts:
    """Files written by a build."""

    asm: Path
    obj: Path
    exe: Path


def build(text: str, stem: str | Path, toolchain: Toolchain | None = None) -> Artifacts:
    """Write `<stem>.s`, then assemble to `<stem>.o` and link to `<stem>`."""
    if toolchain is None:
        toolchain = Toolchain()
    stem = Path(stem)
    artifacts = Artifacts(
        asm=stem.with_name(stem.name + ".s"),
        obj=stem.with_name(stem.name + ".o"),
        exe=stem,
    )
    artifacts.asm.write_text(text)
    LOGGER.info("wrote %s", artifacts.asm)
    artifacts.obj.write_bytes(toolchain.assemble(text))
    LOGGER.info("wrote %s", artifacts.obj)
    artifacts.exe.write_bytes(toolchain.link(artifacts.obj.read_bytes()))
    os.chmod(artifacts.exe, 0o755)
    LOGGER.info("wrote %s", artifacts.exe)
    return artifacts


def run_executable(exe: Path) -> int:
    """Run a built program, passing stdio through. Returns its exit status."""
    LOGGER.debug("[CMD] %s", exe)
    return subprocess.run([str(exe.resolve())]).returncode
