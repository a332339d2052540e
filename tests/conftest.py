import os
import tempfile
from pathlib import Path

import pytest

import randquantum_resources

# Stand-in for dieharder: echoes its arguments, optionally copies the data
# file (last argument) to $STUB_COPY, sends $STUB_SIGNAL to its parent and
# waits to be killed, and fails with status 3 when $STUB_FAIL is set.
STUB_DIEHARDER = """#!/bin/sh
for last; do :; done
echo "#=============================================================================#"
echo "#            dieharder version 3.31.1 (stub)"
echo "args: $*"
if [ -n "$STUB_COPY" ]; then cp "$last" "$STUB_COPY"; fi
if [ -n "$STUB_SIGNAL" ]; then kill -"$STUB_SIGNAL" $PPID; sleep 10; fi
if [ -n "$STUB_FAIL" ]; then echo "$STUB_FAIL" >&2; exit 3; fi
echo "   diehard_birthdays|   0|       100|     100|0.51851851|  PASSED"
"""


@pytest.fixture
def temp_dirs(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> tuple[Path, Path]:
    """Point the generic and the fast temp directory into tmp_path."""
    temp_dir = tmp_path / "tmp"
    fast_dir = tmp_path / "shm"
    temp_dir.mkdir()
    fast_dir.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(temp_dir))
    monkeypatch.setattr(randquantum_resources, "FAST_TEMP_DIR", fast_dir)
    return temp_dir, fast_dir


@pytest.fixture
def stub_dieharder(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Put a fake dieharder first on PATH."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "dieharder"
    script.write_text(STUB_DIEHARDER)
    script.chmod(0o755)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.delenv("STUB_FAIL", raising=False)
    monkeypatch.delenv("STUB_COPY", raising=False)
    monkeypatch.delenv("STUB_SIGNAL", raising=False)
    return script

