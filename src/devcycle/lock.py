# lock.py
from __future__ import annotations

import fcntl
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import settings
from .runner import ScriptError


@dataclass(eq=False)
class LockHeld(ScriptError):
    path: str
    pid: Optional[int] = None
    script: Optional[str] = None

    kind = "lock_held"

    def __str__(self) -> str:
        owner = f"pid {self.pid}" if self.pid else "another process"
        running = f" running '{self.script}'" if self.script else ""
        return f"Another devcycle invocation holds the run lock ({owner}{running}): {self.path}"


class RunLock:
    """
    Exclusive lock for one top-level invocation.

    The external container stack and schema are shared; two invocations
    interleaving `start` and `shutdown` would corrupt them. The lock is a
    kernel `flock` on `<state_dir>/run.lock`, held on a descriptor that
    stays open for the whole run, so it is freed when the owner exits for
    any reason. The file itself only carries the owner's pid and script
    for error messages, and exists only while the lock is held.
    """

    def __init__(self, state_dir: str | Path | None = None, *, script: str = ""):
        self.state_dir = Path(state_dir or settings.STATE_DIR)
        self.path = self.state_dir / settings.LOCK_FILE
        self.script = script
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def _read_owner(self) -> tuple[Optional[int], Optional[str]]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return int(data.get("pid")), data.get("script")
        except FileNotFoundError:
            return None, None
        except (ValueError, TypeError, AttributeError):
            # owner has not written its details yet, or a foreign file
            return None, None

    def _is_current_file(self, fd: int) -> bool:
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return False
        opened = os.fstat(fd)
        return (opened.st_dev, opened.st_ino) == (on_disk.st_dev, on_disk.st_ino)

    def acquire(self) -> None:
        if self._fd is not None:
            return
        self.state_dir.mkdir(parents=True, exist_ok=True)
        while True:
            fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                pid, owner_script = self._read_owner()
                raise LockHeld(path=str(self.path), pid=pid, script=owner_script) from None
            except BaseException:
                os.close(fd)
                raise
            if self._is_current_file(fd):
                break
            # the previous owner unlinked the file between our open and flock
            os.close(fd)

        os.ftruncate(fd, 0)
        os.write(fd, json.dumps({"pid": os.getpid(), "script": self.script}).encode("utf-8"))
        self._fd = fd

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            # still locked here, so the path names our file
            self.path.unlink(missing_ok=True)
        finally:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
