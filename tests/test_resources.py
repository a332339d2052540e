import atexit
import os
import signal
from pathlib import Path

import pytest

import randquantum_resources
from randquantum_errors import ResourceError, SignalInterrupt
from randquantum_resources import (
    TempFileScope,
    acquire,
    fast_temp_dir,
    make_temp_file,
    release,
    temp_name,
)


def test_acquire_places_files(temp_dirs: tuple[Path, Path]) -> None:
    temp_dir, fast_dir = temp_dirs

    files = acquire("run")

    assert files.data.parent == temp_dir
    assert files.scratch_mem.parent == fast_dir
    assert files.scratch_err.parent == fast_dir
    assert all(path.is_file() for path in files.paths())
    assert len(set(files.paths())) == 3


def test_fast_dir_falls_back(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, temp_dirs) -> None:
    monkeypatch.setattr(randquantum_resources, "FAST_TEMP_DIR", tmp_path / "missing")

    assert fast_temp_dir() == temp_dirs[0]


def test_release_is_idempotent(temp_dirs) -> None:
    files = acquire("run")

    release(files)
    release(files)

    assert not any(path.exists() for path in files.paths())


def test_release_leaves_other_runs_alone(temp_dirs) -> None:
    first = acquire("run")
    second = acquire("run")

    release(first)
    release(first)

    assert all(path.exists() for path in second.paths())
    release(second)


def test_names_are_unique() -> None:
    names = {temp_name("run", ".data") for _ in range(10_000)}

    assert len(names) == 10_000


def test_make_temp_file_failure(tmp_path: Path) -> None:
    with pytest.raises(ResourceError):
        make_temp_file(tmp_path / "missing", "run")


def test_partial_acquire_is_rolled_back(tmp_path: Path) -> None:
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()

    with pytest.raises(ResourceError):
        acquire("run", temp_dir=temp_dir, fast_dir=tmp_path / "missing")

    assert list(temp_dir.iterdir()) == []


def test_scope_cleans_up_on_success(temp_dirs) -> None:
    with TempFileScope("run") as files:
        assert all(path.exists() for path in files.paths())

    assert not any(path.exists() for path in files.paths())


def test_scope_cleans_up_on_error(temp_dirs) -> None:
    with pytest.raises(RuntimeError):
        with TempFileScope("run") as files:
            files.data.write_text("partial")
            raise RuntimeError("boom")

    assert not any(path.exists() for path in files.paths())


def test_scope_turns_signal_into_interrupt(temp_dirs) -> None:
    previous = signal.getsignal(signal.SIGTERM)

    with pytest.raises(SignalInterrupt) as excinfo:
        with TempFileScope("run") as files:
            os.kill(os.getpid(), signal.SIGTERM)

    assert excinfo.value.signum == signal.SIGTERM
    assert excinfo.value.exit_code == 114
    assert not any(path.exists() for path in files.paths())
    assert signal.getsignal(signal.SIGTERM) is previous


def test_scope_release_twice(temp_dirs) -> None:
    scope = TempFileScope("run", handle_signals=False)
    with scope as files:
        scope.release()
        assert not files.data.exists()

    scope.release()


def test_scope_unregisters_atexit(temp_dirs, monkeypatch: pytest.MonkeyPatch) -> None:
    registered = []
    monkeypatch.setattr(atexit, "register", registered.append)
    monkeypatch.setattr(atexit, "unregister", registered.remove)

    with TempFileScope("run", handle_signals=False):
        assert len(registered) == 1

    assert registered == []


def failing_release(files) -> None:
    raise ResourceError("cannot remove temporary files: busy")


def test_second_signal_does_not_interrupt_removal(temp_dirs) -> None:
    unlink = Path.unlink

    def unlink_and_signal(self, missing_ok=False):
        os.kill(os.getpid(), signal.SIGINT)
        unlink(self, missing_ok=missing_ok)

    with pytest.MonkeyPatch.context() as mp:
        with pytest.raises(SignalInterrupt) as excinfo:
            with TempFileScope("run") as files:
                mp.setattr(Path, "unlink", unlink_and_signal)
                os.kill(os.getpid(), signal.SIGTERM)

    assert excinfo.value.signum == signal.SIGTERM
    assert [path for path in files.paths() if path.exists()] == []


def test_removal_failure_keeps_interrupt(temp_dirs, capsys: pytest.CaptureFixture[str]) -> None:
    scope = TempFileScope("run")

    with pytest.MonkeyPatch.context() as mp:
        with pytest.raises(SignalInterrupt):
            with scope:
                mp.setattr(randquantum_resources, "release", failing_release)
                raise SignalInterrupt(signal.SIGTERM)

    assert "run: cannot remove temporary files: busy" in capsys.readouterr().err
    # Removal failed, so the atexit hook is still registered
    atexit.unregister(scope.release)
    scope.release()


def test_removal_failure_raised_without_other_error(temp_dirs) -> None:
    scope = TempFileScope("run", handle_signals=False)

    with pytest.MonkeyPatch.context() as mp:
        with pytest.raises(ResourceError):
            with scope:
                mp.setattr(randquantum_resources, "release", failing_release)

    atexit.unregister(scope.release)
    scope.release()
    assert not any(path.exists() for path in scope.files.paths())
