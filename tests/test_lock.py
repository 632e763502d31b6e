import fcntl
import json
import os
import subprocess
import sys

import pytest

from devcycle.lock import LockHeld, RunLock


def _dead_pid() -> int:
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid


def test_lock_file_exists_only_while_held(tmp_path):
    lock = RunLock(tmp_path / "state", script="tests")

    with lock:
        assert lock.held
        data = json.loads(lock.path.read_text())
        assert data == {"pid": os.getpid(), "script": "tests"}

    assert not lock.held
    assert not lock.path.exists()


def test_second_invocation_is_refused(tmp_path):
    with RunLock(tmp_path, script="start"):
        with pytest.raises(LockHeld) as excinfo:
            RunLock(tmp_path, script="shutdown").acquire()

    err = excinfo.value
    assert err.pid == os.getpid()
    assert err.script == "start"
    assert "start" in str(err)


def test_refused_lock_does_not_remove_the_owner_file(tmp_path):
    owner = RunLock(tmp_path, script="app")
    owner.acquire()
    try:
        intruder = RunLock(tmp_path, script="tests")
        with pytest.raises(LockHeld):
            with intruder:
                pass
        assert owner.path.exists()
        assert json.loads(owner.path.read_text())["script"] == "app"
    finally:
        owner.release()


def test_leftover_file_from_a_dead_process_is_taken_over(tmp_path):
    lock = RunLock(tmp_path, script="tests")
    lock.path.write_text(json.dumps({"pid": _dead_pid(), "script": "app"}))

    with lock:
        assert json.loads(lock.path.read_text()) == {"pid": os.getpid(), "script": "tests"}


def test_only_one_of_two_invocations_takes_over_a_leftover_file(tmp_path):
    stale = json.dumps({"pid": _dead_pid(), "script": "app"})
    first = RunLock(tmp_path, script="start")
    second = RunLock(tmp_path, script="tests")
    first.path.write_text(stale)

    first.acquire()
    try:
        with pytest.raises(LockHeld):
            second.acquire()
        assert first.held
        assert not second.held
    finally:
        first.release()


def test_release_between_open_and_lock_does_not_let_two_owners_in(tmp_path, monkeypatch):
    first = RunLock(tmp_path, script="start")
    first.acquire()
    third = RunLock(tmp_path, script="app")
    real_flock = fcntl.flock
    interleaved = []

    def flock(fd, operation):
        if not interleaved:
            interleaved.append(fd)
            # the owner finishes and another invocation starts before
            # `second` gets to lock the file it already opened
            first.release()
            third.acquire()
        return real_flock(fd, operation)

    monkeypatch.setattr(fcntl, "flock", flock)
    second = RunLock(tmp_path, script="tests")
    try:
        with pytest.raises(LockHeld) as excinfo:
            second.acquire()
        assert excinfo.value.script == "app"
        assert third.held
        assert not second.held
        assert json.loads(third.path.read_text())["script"] == "app"
    finally:
        third.release()


def test_release_leaves_a_newer_owner_file_alone(tmp_path):
    first = RunLock(tmp_path, script="start")
    first.acquire()
    first.release()
    second = RunLock(tmp_path, script="tests")
    second.acquire()
    try:
        first.release()
        assert second.path.exists()
    finally:
        second.release()


def test_lock_held_with_unreadable_details(tmp_path):
    path = tmp_path / "run.lock"
    fd = os.open(path, os.O_CREAT | os.O_RDWR, 0o644)
    try:
        os.write(fd, b"garbage")
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

        with pytest.raises(LockHeld) as excinfo:
            RunLock(tmp_path).acquire()

        assert excinfo.value.pid is None
        assert path.read_text() == "garbage"
    finally:
        os.close(fd)


def test_lock_is_freed_when_the_owner_process_dies(tmp_path):
    child = (
        "import sys, time\n"
        "from devcycle.lock import RunLock\n"
        "RunLock(sys.argv[1], script='app').acquire()\n"
        "print('locked', flush=True)\n"
        "time.sleep(30)\n"
    )
    proc = subprocess.Popen(
        [sys.executable, "-c", child, str(tmp_path)],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert proc.stdout.readline().strip() == "locked"
        with pytest.raises(LockHeld) as excinfo:
            RunLock(tmp_path).acquire()
        assert excinfo.value.pid == proc.pid
    finally:
        proc.kill()
        proc.wait()
        proc.stdout.close()

    with RunLock(tmp_path, script="tests") as lock:
        assert lock.held


def test_release_without_acquire_is_harmless(tmp_path):
    RunLock(tmp_path).release()
