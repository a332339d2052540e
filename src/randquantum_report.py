"""Assemble the text report around dieharder's output.

Layout:

    # <program> length=<n> tests=<selector> started <timestamp>
    # report: <path>
    <dieharder output, verbatim>
    # <program> finished in <seconds> seconds, <n> samples
"""

import tempfile
import time
from pathlib import Path

TIMESTAMP_FORMAT = "%a %b %d %H:%M:%S %Z %Y"


def report_path(program_name: str, temp_dir: Path | None = None) -> Path:
    """Return ``<temp_dir>/<program_name>_report.txt``."""
    directory = Path(temp_dir) if temp_dir is not None else Path(tempfile.gettempdir())
    return directory / f"{program_name}_report.txt"


def start_report(
    path: Path,
    program_name: str,
    length: int,
    tests: str,
    now: time.struct_time | None = None,
    source: str | None = None,
) -> None:
    """Create (or truncate) the report and write its header."""
    timestamp = time.strftime(TIMESTAMP_FORMAT, now if now is not None else time.localtime())
    with open(path, "w") as fp:
        fp.write(f"# {program_name} length={length} tests={tests} started {timestamp}\n")
        fp.write(f"# report: {path}\n")
        if source:
            fp.write(f"# source: {source}\n")


def append_output(path: Path, output_path: Path) -> None:
    """Append the harness output file to the report unchanged.

    A missing final newline is added so the footer starts on its own line.
    """
    data = Path(output_path).read_bytes()
    with open(path, "ab") as fp:
        fp.write(data)
        if data and not data.endswith(b"\n"):
            fp.write(b"\n")


def finish_report(path: Path, program_name: str, elapsed: float, length: int, substitutions: int = 0) -> None:
    """Append the footer line."""
    with open(path, "a") as fp:
        if substitutions:
            fp.write(f"# {substitutions} of {length} samples substituted with pseudo-random values\n")
        fp.write(f"# {program_name} finished in {elapsed:.1f} seconds, {length} samples\n")
