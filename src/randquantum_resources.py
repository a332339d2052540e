"""Temporary file lifecycle for a single dieharder run.

A run owns three files: the data file handed to dieharder (in the generic
temp directory) and two scratch files for the harness output and errors (in
/dev/shm when available). ``TempFileScope`` creates them, turns interrupt
signals into ``SignalInterrupt`` exceptions, and removes the files on every
exit path.
"""

import atexit
import os
import secrets
import signal
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

from randquantum_errors import ResourceError, SignalInterrupt

# Memory-backed directory used for the scratch files when present
FAST_TEMP_DIR = Path("/dev/shm")

# Signals that abort a run
INTERRUPT_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGHUP", "SIGINT", "SIGQUIT", "SIGTERM") if hasattr(signal, name)
)

# Random bytes in each generated file name (hex encoded)
NAME_TOKEN_BYTES = 8


@dataclass(frozen=True)
class TempFiles:
    """Paths of the three temporary files owned by one run."""

    data: Path
    scratch_mem: Path
    scratch_err: Path

    def paths(self) -> tuple[Path, Path, Path]:
        return (self.data, self.scratch_mem, self.scratch_err)


def fast_temp_dir() -> Path:
    """Return /dev/shm if it is a writable directory, else the generic temp dir."""
    if FAST_TEMP_DIR.is_dir() and os.access(FAST_TEMP_DIR, os.W_OK):
        return FAST_TEMP_DIR
    return Path(tempfile.gettempdir())


def temp_name(prefix: str, suffix: str = "") -> str:
    """Build a file name with a cryptographically random middle part."""
    return f"{prefix}.{secrets.token_hex(NAME_TOKEN_BYTES)}{suffix}"


def make_temp_file(directory: Path, prefix: str, suffix: str = "") -> Path:
    """Create an empty file with a unique random name in ``directory``.

    Raises:
        ResourceError: If the file cannot be created.
    """
    path = Path(directory) / temp_name(prefix, suffix)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except OSError as e:
        raise ResourceError(f"cannot create temporary file {path}: {e}") from e
    os.close(fd)
    return path


def acquire(program_name: str, temp_dir: Path | None = None, fast_dir: Path | None = None) -> TempFiles:
    """Create the data file and the two scratch files for one run.

    Args:
        program_name: Used as the file name prefix.
        temp_dir: Directory for the data file. Defaults to the system temp dir.
        fast_dir: Directory for the scratch files. Defaults to ``fast_temp_dir()``.

    Returns:
        The created files.

    Raises:
        ResourceError: If any file cannot be created. Files created before the
            failure are removed first.
    """
    temp_dir = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())
    fast_dir = Path(fast_dir) if fast_dir is not None else fast_temp_dir()

    created: list[Path] = []
    try:
        for directory, suffix in ((temp_dir, ".data"), (fast_dir, ".mem"), (fast_dir, ".err")):
            created.append(make_temp_file(directory, program_name, suffix))
    except ResourceError:
        _remove_all(created)
        raise

    return TempFiles(*created)


def release(files: TempFiles | None) -> None:
    """Remove the run's temporary files. Safe to call more than once.

    Raises:
        ResourceError: If an existing file cannot be removed.
    """
    if files is None:
        return
    _remove_all(files.paths())


def _remove_all(paths) -> None:
    failures = []
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            failures.append(f"{path}: {e}")
    if failures:
        raise ResourceError("cannot remove temporary files: " + "; ".join(failures))


def _raise_interrupt(signum, frame) -> None:
    raise SignalInterrupt(signum)


def install_signal_handlers() -> dict[int, object]:
    """Route interrupt signals to ``SignalInterrupt``.

    Returns:
        The previous handlers, for ``restore_signal_handlers``.
    """
    previous = {}
    for signum in INTERRUPT_SIGNALS:
        previous[signum] = signal.signal(signum, _raise_interrupt)
    return previous


def ignore_interrupt_signals() -> None:
    for signum in INTERRUPT_SIGNALS:
        signal.signal(signum, signal.SIG_IGN)


def restore_signal_handlers(previous: dict[int, object]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler if handler is not None else signal.SIG_DFL)


class TempFileScope:
    """Own a run's temporary files for the duration of a ``with`` block.

    The files are removed when the block exits, whether it finishes, raises,
    or is interrupted by a signal. Removal is also registered with atexit in
    case the interpreter exits without unwinding the block.

    Usage:
        with TempFileScope("dieharder_run") as files:
            write_data_file(files.data, ...)
    """

    def __init__(
        self,
        program_name: str,
        temp_dir: Path | None = None,
        fast_dir: Path | None = None,
        handle_signals: bool = True,
    ):
        self._program_name = program_name
        self._temp_dir = temp_dir
        self._fast_dir = fast_dir
        self._handle_signals = handle_signals
        self._previous_handlers: dict[int, object] = {}
        self.files: TempFiles | None = None

    def __enter__(self) -> TempFiles:
        if self._handle_signals:
            self._previous_handlers = install_signal_handlers()
        try:
            self.files = acquire(self._program_name, self._temp_dir, self._fast_dir)
        except BaseException:
            self._restore()
            raise
        atexit.register(self.release)
        return self.files

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        # A second interrupt must not cut the removal short
        if self._previous_handlers:
            ignore_interrupt_signals()
        try:
            self.release()
        except ResourceError as e:
            if exc_type is None:
                raise
            print(f"{self._program_name}: {e}", file=sys.stderr)
        else:
            atexit.unregister(self.release)
        finally:
            self._restore()

    def release(self) -> None:
        """Remove the files. Repeated calls are no-ops."""
        release(self.files)

    def _restore(self) -> None:
        if self._previous_handlers:
            restore_signal_handlers(self._previous_handlers)
            self._previous_handlers = {}
