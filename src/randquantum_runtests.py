#!/usr/bin/python3
"""Generate random integers and run the dieharder test suite on them.

Draws LENGTH unsigned 32-bit integers from a TrueRNG device (or numpy when
RANDQUANTUM_PSEUDO=1), writes them to a temporary dieharder ASCII input file,
runs dieharder with the given test selection, and saves the output with a
header and footer to <tempdir>/<program>_report.txt.

Usage:
    randquantum_runtests.py [LENGTH] [TESTS]

    LENGTH  number of samples (default: 21654321)
    TESTS   dieharder test selection (default: "-a", e.g. "-d 204")

Environment:
    RANDQUANTUM_PORT        TrueRNG serial port (auto-detected if unset)
    RANDQUANTUM_PSEUDO      "1" to use numpy pseudo-random numbers
    RANDQUANTUM_RETRIES     extra attempts per failed hardware draw (default: 0)
    RANDQUANTUM_SUBSTITUTE  "1" to substitute pseudo-random values for draws
                            that still fail after the retries

Exit status: 0 on success, 114 when interrupted by a signal, 116 on an
internal failure, or dieharder's own non-zero exit status.

Note: a full "-a" run takes hours and the default LENGTH is rewound many
times by dieharder; use a single test ("-d N") for quick checks.
"""

import argparse
import os
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from randquantum_datafile import write_data_file
from randquantum_errors import (
    EXIT_INTERNAL_FAILURE,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    ExternalToolError,
    RandQuantumError,
)
from randquantum_report import append_output, finish_report, report_path, start_report
from randquantum_resources import TempFileScope, TempFiles
from randquantum_source import open_source
from randquantum_utils import check_test_binaries, run_dieharder

DEFAULT_LENGTH = 21_654_321
DEFAULT_TESTS = "-a"
PROGRAM_NAME = "randquantum_dieharder"

Harness = Callable[[Path, str, Path, Path], None]


@dataclass(frozen=True)
class RunConfig:
    """Command line settings for one run."""

    length: int = DEFAULT_LENGTH
    tests: str = DEFAULT_TESTS
    program_name: str = PROGRAM_NAME


@dataclass
class RunContext:
    """Everything a pipeline step needs: settings, files, and start time."""

    config: RunConfig
    files: TempFiles
    report: Path
    started: float

    def elapsed(self) -> float:
        return time.monotonic() - self.started


def positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {value}")
    return value


def parse_args(argv: list[str] | None = None, program_name: str = PROGRAM_NAME) -> RunConfig:
    """Parse the two positional arguments into a RunConfig."""
    parser = argparse.ArgumentParser(
        prog=program_name,
        description="Run dieharder on random integers drawn from a TrueRNG device",
    )
    parser.add_argument(
        "length",
        nargs="?",
        type=positive_int,
        default=DEFAULT_LENGTH,
        help=f"Number of random samples (default: {DEFAULT_LENGTH})",
    )
    parser.add_argument(
        "tests",
        nargs="?",
        default=DEFAULT_TESTS,
        help=f'dieharder test selection, e.g. "-d 204" (default: "{DEFAULT_TESTS}")',
    )
    # Selectors start with "-", so everything after the length is positional
    args = parser.parse_args(_protect_selector(argv if argv is not None else sys.argv[1:]))
    return RunConfig(length=args.length, tests=args.tests, program_name=program_name)


def _protect_selector(argv: list[str]) -> list[str]:
    if argv and argv[0] in ("-h", "--help"):
        return list(argv)
    return ["--", *argv]


def generate_samples(context: RunContext, draw: Callable[[int], int]) -> None:
    print(f"Writing {context.config.length} samples to {context.files.data}")
    write_data_file(context.files.data, context.config.length, draw, progress=True)


def invoke_harness(context: RunContext, harness: Harness) -> None:
    files = context.files
    try:
        harness(files.data, context.config.tests, files.scratch_mem, files.scratch_err)
    finally:
        # Keep whatever dieharder printed, even when it failed
        append_output(context.report, files.scratch_mem)


def run(
    config: RunConfig,
    draw: Callable[[int], int],
    harness: Harness | None = None,
    temp_dir: Path | None = None,
    fast_dir: Path | None = None,
    source: str | None = None,
) -> Path:
    """Run the whole pipeline and return the report path.

    Temporary files are removed on every exit path; the report is kept.

    Raises:
        RandQuantumError: Any failure, including SignalInterrupt.
    """
    harness = harness if harness is not None else run_dieharder
    report = report_path(config.program_name, temp_dir)

    with TempFileScope(config.program_name, temp_dir, fast_dir) as files:
        context = RunContext(config, files, report, time.monotonic())

        print("=" * 50)
        print(f"{config.program_name}: {config.length} samples, tests {config.tests}")
        if source:
            print(f"Source: {source}")
        print(f"Report: {report}")
        print("=" * 50)

        start_report(report, config.program_name, config.length, config.tests, source=source)
        generate_samples(context, draw)
        invoke_harness(context, harness)
        finish_report(
            report,
            config.program_name,
            context.elapsed(),
            config.length,
            substitutions=getattr(draw, "substitutions", 0),
        )

    return report


def source_settings(environ=os.environ) -> dict:
    """Read random source settings from the environment."""
    retries = environ.get("RANDQUANTUM_RETRIES", "0")
    try:
        retries = int(retries)
    except ValueError:
        raise ValueError(f"RANDQUANTUM_RETRIES must be an integer, got {retries!r}") from None
    if retries < 0:
        raise ValueError(f"RANDQUANTUM_RETRIES must be non-negative, got {retries}")

    return {
        "port": environ.get("RANDQUANTUM_PORT") or None,
        "pseudo": environ.get("RANDQUANTUM_PSEUDO") == "1",
        "retries": retries,
        "substitute": environ.get("RANDQUANTUM_SUBSTITUTE") == "1",
    }


def _error(program_name: str, message: str) -> None:
    print(f"{program_name}: {message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Returns:
        Exit code (see module docstring).
    """
    try:
        return _main(argv)
    except KeyboardInterrupt:
        _error(PROGRAM_NAME, "interrupted")
        return EXIT_INTERRUPTED


def _main(argv: list[str] | None) -> int:
    config = parse_args(argv)
    program_name = config.program_name

    missing = check_test_binaries()
    if missing:
        _error(program_name, f"missing required binaries: {', '.join(missing)}")
        return EXIT_INTERNAL_FAILURE

    try:
        settings = source_settings()
    except ValueError as e:
        _error(program_name, str(e))
        return EXIT_INTERNAL_FAILURE

    close = None
    try:
        draw, close, description = open_source(**settings)
        report = run(config, draw, source=description)
    except ExternalToolError as e:
        _error(program_name, str(e))
        if e.stderr:
            print(e.stderr, end="" if e.stderr.endswith("\n") else "\n", file=sys.stderr)
        return e.exit_code
    except RandQuantumError as e:
        _error(program_name, str(e))
        return e.exit_code
    except Exception as e:
        _error(program_name, f"internal failure: {e!r}")
        return EXIT_INTERNAL_FAILURE
    finally:
        if close is not None:
            close()

    print(report.read_text(), end="")
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
