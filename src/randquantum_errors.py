"""Errors raised while preparing, running, and reporting a dieharder run.

Each error carries the process exit code that ``randquantum_runtests.main``
uses when the error reaches the top level.

A positive dieharder exit status is passed through unchanged as the
process exit code. A dieharder status of 114 or 116 is therefore
indistinguishable from EXIT_INTERRUPTED or EXIT_INTERNAL_FAILURE by exit
code alone; the "dieharder exited with status N" message on stderr tells
them apart.
"""

EXIT_SUCCESS = 0
EXIT_INTERRUPTED = 114
EXIT_INTERNAL_FAILURE = 116


class RandQuantumError(Exception):
    """Base class for all run failures."""

    exit_code = EXIT_INTERNAL_FAILURE


class ResourceError(RandQuantumError):
    """A temporary file could not be created or removed."""


class RandomSourceError(RandQuantumError):
    """A random draw failed, timed out, or returned an out-of-range value."""


class ExternalToolError(RandQuantumError):
    """The test harness could not be launched or exited non-zero."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
        # Negative return codes mean the harness itself died from a signal
        if returncode is not None and returncode > 0:
            self.exit_code = returncode


class SignalInterrupt(RandQuantumError):
    """An interrupt-class signal arrived during the run."""

    exit_code = EXIT_INTERRUPTED

    def __init__(self, signum: int):
        super().__init__(f"interrupted by signal {signum}")
        self.signum = signum
