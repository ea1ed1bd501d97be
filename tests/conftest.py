"""Pytest configuration for the ezc test suite."""

import shutil
import sys
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).parent
ROOT_DIR = TESTS_DIR.parent

# Repo root for `ezc`, tests dir for the x64sim helper
sys.path.insert(0, str(ROOT_DIR))
sys.path.insert(0, str(TESTS_DIR))

HAVE_TOOLCHAIN = shutil.which("nasm") is not None and shutil.which("ld") is not None

requires_toolchain = pytest.mark.skipif(
    not HAVE_TOOLCHAIN, reason="nasm and ld are not both on PATH"
)


def pytest_addoption(parser):
    """Add --keep-artifacts option."""
    parser.addoption(
        "--keep-artifacts",
        action="store_true",
        default=False,
        help="Build native executables in ./build-artifacts instead of a tmp dir",
    )


@pytest.fixture
def artifact_dir(request, tmp_path: Path) -> Path:
    """Directory for native build outputs."""
    if request.config.getoption("keep_artifacts"):
        out = ROOT_DIR / "build-artifacts"
        out.mkdir(exist_ok=True)
        return out
    return tmp_path
