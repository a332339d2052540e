"""Write and read dieharder ASCII input files.

The file starts with a five line header followed by one decimal integer per
line:

    # generator: randquantum
    # seed: 0
    type: d
    count: 10
    numbit: 32
    3215010932
    ...

dieharder's file_input parser (generator 202) skips the ``#`` lines and reads ``type``,
``count`` and ``numbit``.
"""

import operator
import sys
from collections.abc import Callable
from pathlib import Path

from randquantum_errors import RandomSourceError, RandQuantumError

HEADER_KEYS = ("generator", "seed", "type", "count", "numbit")

DEFAULT_GENERATOR = "randquantum"
DEFAULT_SEED = 0
DEFAULT_NUMBIT = 32

# Samples between progress updates
PROGRESS_EVERY = 100_000


def format_header(
    count: int,
    generator: str = DEFAULT_GENERATOR,
    seed: int = DEFAULT_SEED,
    numbit: int = DEFAULT_NUMBIT,
) -> str:
    """Return the five header lines, newline terminated."""
    return f"# generator: {generator}\n# seed: {seed}\ntype: d\ncount: {count}\nnumbit: {numbit}\n"


def write_data_file(
    path: Path,
    count: int,
    draw: Callable[[int], int],
    generator: str = DEFAULT_GENERATOR,
    seed: int = DEFAULT_SEED,
    numbit: int = DEFAULT_NUMBIT,
    progress: bool = False,
) -> int:
    """Fill ``path`` with a header and ``count`` random integers.

    Values are drawn one at a time, in order, each in [0, 2**numbit - 1].
    A failing draw aborts the write; the header count and the number of data
    lines only agree once this function returns.

    Args:
        path: File to (over)write.
        count: Number of samples, at least 1.
        draw: Random source, called with the inclusive upper bound.
        generator: Name recorded in the header.
        seed: Seed recorded in the header.
        numbit: Bits per sample.
        progress: Print a progress line to stdout while writing.

    Returns:
        The number of data lines written.

    Raises:
        ValueError: If count is less than 1.
        RandomSourceError: If a draw fails or returns a value out of range.
    """
    if count < 1:
        raise ValueError(f"count must be at least 1, got {count}")

    bound = (1 << numbit) - 1

    with open(path, "w") as fp:
        fp.write(format_header(count, generator, seed, numbit))

        for i in range(count):
            try:
                value = draw(bound)
            except RandQuantumError:
                raise
            except Exception as e:
                raise RandomSourceError(f"draw {i + 1} of {count} failed: {e}") from e

            try:
                value = operator.index(value)
            except TypeError as e:
                raise RandomSourceError(f"draw {i + 1} of {count} returned non-integer {value!r}") from e
            if not 0 <= value <= bound:
                raise RandomSourceError(f"draw {i + 1} of {count} returned {value}, outside [0, {bound}]")

            fp.write(f"{value}\n")

            if progress and (i + 1) % PROGRESS_EVERY == 0:
                sys.stdout.write(f"\r{i + 1} of {count} samples ({(i + 1) * 100 / count:2.1f}%)")
                sys.stdout.flush()

    if progress:
        print(f"\r{count} of {count} samples (100.0%)")

    return count


def read_data_file(path: Path) -> tuple[dict[str, str], list[int]]:
    """Parse a data file written by ``write_data_file``.

    Returns:
        (header, values) where header maps each of HEADER_KEYS to its text.

    Raises:
        ValueError: If the header is malformed, a value is not an unsigned
            integer within numbit bits, or the count does not match.
    """
    with open(path) as fp:
        lines = fp.read().splitlines()

    if len(lines) < len(HEADER_KEYS):
        raise ValueError(f"{path}: truncated header")

    header: dict[str, str] = {}
    for key, line in zip(HEADER_KEYS, lines):
        name, sep, value = line.lstrip("# ").partition(":")
        if not sep or name != key:
            raise ValueError(f"{path}: expected header key {key!r}, got {line!r}")
        header[key] = value.strip()

    bound = (1 << int(header["numbit"])) - 1
    values = []
    for lineno, line in enumerate(lines[len(HEADER_KEYS) :], start=len(HEADER_KEYS) + 1):
        if not line.isdigit() or not line.isascii():
            raise ValueError(f"{path}:{lineno}: not an unsigned integer: {line!r}")
        value = int(line)
        if value > bound:
            raise ValueError(f"{path}:{lineno}: {value} exceeds {bound}")
        values.append(value)

    if len(values) != int(header["count"]):
        raise ValueError(f"{path}: header count {header['count']} but {len(values)} values")

    return header, values
