#!/usr/bin/python3
"""Shared utilities for the TrueRNG random source and the dieharder harness.

Device helpers locate a TrueRNG, TrueRNGpro, or TrueRNGproV2 and switch it
into MODE_NORMAL. Harness helpers build the dieharder command line and run
it against an ASCII data file.
"""

import shlex
import shutil
import subprocess
import sys
import time
from pathlib import Path

import serial
from serial.tools import list_ports

from randquantum_errors import ExternalToolError

# USB Vendor/Product IDs for device identification
TRUERNG_VID_PID = "04D8:F5FE"  # TrueRNG V1/V2/V3
TRUERNGPRO_VID_PID = "16D0:0AA0"  # TrueRNGpro V1
TRUERNGPROV2_VID_PID = "04D8:EBB5"  # TrueRNGpro V2

# Baudrate that selects whitened output on TrueRNGpro/TrueRNGproV2
MODE_NORMAL_BAUDRATE = 300

# dieharder generator number for "file_input": ASCII decimal integers, one per line
DIEHARDER_ASCII_INPUT = 202

REQUIRED_BINARIES = ("dieharder",)


def find_truerng_devices() -> list[tuple[str, str]]:
    """Scan for connected TrueRNG devices.

    Returns:
        A list of tuples (port_path, device_type) for each detected device.
        Device types are: "TrueRNG", "TrueRNGpro", "TrueRNGproV2".
    """
    devices: list[tuple[str, str]] = []

    for port_info in list_ports.comports():
        hwid = port_info[2] if len(port_info) > 2 else ""

        if TRUERNG_VID_PID in hwid:
            devices.append((port_info[0], "TrueRNG"))
        elif TRUERNGPRO_VID_PID in hwid:
            devices.append((port_info[0], "TrueRNGpro"))
        elif TRUERNGPROV2_VID_PID in hwid:
            devices.append((port_info[0], "TrueRNGproV2"))

    return devices


def get_first_truerng() -> tuple[str, str] | None:
    """Get the first available TrueRNG device, or None."""
    devices = find_truerng_devices()
    return devices[0] if devices else None


def select_normal_mode(port: str) -> None:
    """Put a TrueRNGpro or TrueRNGproV2 into MODE_NORMAL.

    Uses the "knock sequence" of baudrate changes. TrueRNG V1/V2/V3 devices
    ignore it and always stream whitened data.

    Raises:
        serial.SerialException: If the serial port cannot be opened.
    """
    ser = serial.Serial(port=port, baudrate=110, timeout=1)
    time.sleep(0.5)
    ser.close()

    for baudrate in (300, 110, MODE_NORMAL_BAUDRATE):
        ser = serial.Serial(port=port, baudrate=baudrate, timeout=1)
        ser.close()


def reset_serial_port(port: str) -> None:
    """Reset serial port settings on Linux.

    Pyserial may leave the port in a non-standard state; this resets it.
    """
    if sys.platform == "linux":
        subprocess.run(["stty", "-F", port, "min", "1"], check=False)


def check_test_binaries() -> list[str]:
    """Check for required external test binaries.

    Returns:
        List of missing binary names.
    """
    return [binary for binary in REQUIRED_BINARIES if shutil.which(binary) is None]


def dieharder_command(data_path: Path, selector: str, binary: str = "dieharder") -> list[str]:
    """Build the dieharder argv for an ASCII data file.

    Args:
        data_path: File written by ``randquantum_datafile.write_data_file``.
        selector: Test selection in dieharder's own syntax, e.g. "-a" or "-d 204".
        binary: Executable to run.
    """
    return [binary, *shlex.split(selector), "-g", str(DIEHARDER_ASCII_INPUT), "-f", str(data_path)]


def run_dieharder(
    data_path: Path,
    selector: str,
    stdout_path: Path,
    stderr_path: Path,
    binary: str = "dieharder",
) -> None:
    """Run dieharder on a data file, blocking until it finishes.

    There is no timeout; a full "-a" run takes hours.

    Args:
        data_path: ASCII data file to test.
        selector: Test selection passed through to dieharder.
        stdout_path: Receives the dieharder report.
        stderr_path: Receives dieharder diagnostics.
        binary: Executable to run.

    Raises:
        ExternalToolError: If dieharder cannot be started or exits non-zero.
    """
    args = dieharder_command(data_path, selector, binary)
    print("\n *** Running dieharder *** \n")
    print(" ".join(shlex.quote(arg) for arg in args))

    try:
        with open(stdout_path, "w") as outf, open(stderr_path, "w") as errf:
            result = subprocess.run(args, stdout=outf, stderr=errf, check=False)
    except OSError as e:
        raise ExternalToolError(f"failed to run {binary}: {e}", stderr=str(e)) from e

    if result.returncode != 0:
        stderr = Path(stderr_path).read_text(errors="replace")
        raise ExternalToolError(
            f"{binary} exited with status {result.returncode}",
            returncode=result.returncode,
            stderr=stderr,
        )
