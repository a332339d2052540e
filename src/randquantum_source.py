#!/usr/bin/python3
"""Random integer sources for the data file writer.

A source is any callable ``draw(bound) -> int`` returning an integer
uniformly distributed in [0, bound]. This module provides:

- TrueRNG: hardware source reading whitened bytes from a TrueRNG device
- PseudoRandom: numpy PCG64 generator, used when no hardware is wanted or
  as a disclosed substitute for failed hardware draws
- RetryingSource: bounded retry and optional substitution around a source

Usage:
    from randquantum_source import TrueRNG

    with TrueRNG() as rng:
        value = rng.randint(2**32 - 1)
"""

import sys
from collections.abc import Callable
from typing import Self

import numpy as np
import serial

from randquantum_errors import RandomSourceError
from randquantum_utils import get_first_truerng, reset_serial_port, select_normal_mode

__all__ = [
    "TrueRNG",
    "PseudoRandom",
    "RetryingSource",
    "open_source",
]


def _bytes_for(bound: int) -> int:
    return max(1, (bound.bit_length() + 7) // 8)


class TrueRNG:
    """Hardware random number generator using a TrueRNG device.

    Uses NORMAL mode (whitened output). Integers are built from little-endian
    bytes and rejection-sampled so every value in [0, bound] is equally likely.
    """

    def __init__(self, port: str | None = None, buffer_size: int = 8192, timeout: float = 10):
        """Initialize TrueRNG connection settings.

        Args:
            port: Serial port path. Auto-detected if None.
            buffer_size: Size of internal byte buffer for efficiency.
            timeout: Serial read timeout in seconds.
        """
        self._port = port
        self._buffer_size = buffer_size
        self._timeout = timeout
        self._ser: serial.Serial | None = None
        self._buffer = b""
        self._connected = False

    @property
    def port(self) -> str | None:
        return self._port

    def connect(self) -> None:
        """Establish connection to the TrueRNG device."""
        if self._connected:
            return

        if self._port is None:
            device = get_first_truerng()
            if device is None:
                raise RandomSourceError("No TrueRNG device found")
            self._port, _ = device

        try:
            select_normal_mode(self._port)
            self._ser = serial.Serial(port=self._port, timeout=self._timeout)
            if not self._ser.isOpen():
                self._ser.open()
            self._ser.setDTR(True)
            self._ser.flushInput()
            self._connected = True
        except serial.SerialException as e:
            raise RandomSourceError(f"Failed to open {self._port}: {e}") from e

    def disconnect(self) -> None:
        """Close connection to the TrueRNG device."""
        if self._ser is not None:
            self._ser.close()
            self._ser = None
        if self._port is not None and self._connected:
            reset_serial_port(self._port)
        self._connected = False
        self._buffer = b""

    def __enter__(self) -> Self:
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def _read_bytes(self, n: int) -> bytes:
        """Read exactly n bytes from the device, using internal buffer."""
        if not self._connected:
            self.connect()

        while len(self._buffer) < n:
            try:
                chunk = self._ser.read(self._buffer_size)
            except serial.SerialException as e:
                raise RandomSourceError(f"Read error: {e}") from e
            if not chunk:
                raise RandomSourceError("Timeout reading from TrueRNG")
            self._buffer += chunk

        result = self._buffer[:n]
        self._buffer = self._buffer[n:]
        return result

    def randint(self, bound: int) -> int:
        """Return a random integer in [0, bound]."""
        if bound < 0:
            raise ValueError(f"bound must be non-negative, got {bound}")
        nbytes = _bytes_for(bound)
        mask = (1 << bound.bit_length()) - 1
        while True:
            value = int.from_bytes(self._read_bytes(nbytes), byteorder="little") & mask
            if value <= bound:
                return value

    __call__ = randint


class PseudoRandom:
    """Pseudo-random integers from numpy's default generator."""

    def __init__(self, seed: int | None = None):
        self._rng = np.random.default_rng(seed)

    def randint(self, bound: int) -> int:
        """Return a random integer in [0, bound]."""
        if bound < 0:
            raise ValueError(f"bound must be non-negative, got {bound}")
        return int(self._rng.integers(0, bound, endpoint=True, dtype=np.uint64))

    __call__ = randint


class RetryingSource:
    """Retry failed draws and optionally substitute a disclosed fallback value.

    Every failed draw is retried up to ``retries`` more times. If it still
    fails and a ``substitute`` source was given, the value comes from the
    substitute, a warning naming the draw is printed to stderr, and the draw
    is counted in ``substitutions``. Without a substitute the last error
    propagates.
    """

    def __init__(
        self,
        primary: Callable[[int], int],
        retries: int = 0,
        substitute: Callable[[int], int] | None = None,
    ):
        if retries < 0:
            raise ValueError(f"retries must be non-negative, got {retries}")
        self._primary = primary
        self._retries = retries
        self._substitute = substitute
        self.draws = 0
        self.substitutions = 0

    def randint(self, bound: int) -> int:
        self.draws += 1
        for attempt in range(self._retries + 1):
            try:
                return self._primary(bound)
            except RandomSourceError as e:
                last_error = e
                if attempt < self._retries:
                    print(f"Draw {self.draws} failed ({e}), retrying", file=sys.stderr)

        if self._substitute is None:
            raise last_error

        self.substitutions += 1
        print(
            f"Draw {self.draws} failed after {self._retries + 1} attempts ({last_error}), "
            "substituting a pseudo-random value",
            file=sys.stderr,
        )
        return self._substitute(bound)

    __call__ = randint


def open_source(
    port: str | None = None,
    pseudo: bool = False,
    seed: int | None = None,
    retries: int = 0,
    substitute: bool = False,
) -> tuple[Callable[[int], int], Callable[[], None], str]:
    """Build the random source for a run.

    Args:
        port: TrueRNG serial port. Auto-detected if None.
        pseudo: Use numpy pseudo-random numbers instead of hardware.
        seed: Seed for pseudo-random numbers.
        retries: Extra attempts per failed hardware draw.
        substitute: After retries, fall back to pseudo-random values instead
            of failing the run.

    Returns:
        (draw, close, description) where ``close`` releases the device.
    """
    if pseudo:
        return PseudoRandom(seed), lambda: None, "numpy PCG64 (pseudo-random)"

    rng = TrueRNG(port)
    rng.connect()
    description = f"TrueRNG on {rng.port}"

    if retries == 0 and not substitute:
        return rng, rng.disconnect, description

    fallback = PseudoRandom(seed) if substitute else None
    return RetryingSource(rng, retries, fallback), rng.disconnect, description
