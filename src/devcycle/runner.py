# runner.py
from __future__ import annotations

import os
import signal
import subprocess
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, List, Optional, Sequence

from .model import Command, ExecutionResult, RunContext
from .ui.console import Console, get_console

# Exit code reported when the executable could not be started (shell convention).
LAUNCH_FAILURE_CODE = 127
CANCELLED_CODE = 130
SEQUENCER_ERROR_CODE = 1

OUTPUT_TAIL_CHARS = 64_000
# Longest single read from the child; bounds memory for output without newlines.
READ_CHUNK_CHARS = 8_192
TERMINATE_GRACE_SECONDS = 10.0


TOOL_HINTS = {
    "docker": "Install Docker (with the compose plugin) and ensure the daemon is running.",
    "sqlx": "Install sqlx-cli (e.g., cargo install sqlx-cli) or fix PATH.",
    "cargo": "Install a Rust toolchain (e.g., via rustup) or fix PATH.",
    "rustup": "Install rustup or fix PATH.",
}


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

class ScriptError(Exception):
    """
    Base class for everything that aborts a top-level invocation.

    `kind` is a stable machine-readable label; `exit_code` is what the
    CLI exits with.
    """
    kind = "script_error"
    exit_code = SEQUENCER_ERROR_CODE


@dataclass(eq=False)
class StepFailure(ScriptError):
    """A planned command ran (or tried to run) and did not succeed."""
    result: ExecutionResult
    context: Optional[RunContext] = None
    pending_cleanup: List[str] = field(default_factory=list)

    @property
    def step(self) -> str:
        return self.result.name

    @property
    def script(self) -> str:
        return self.result.script

    def __str__(self) -> str:
        return (
            f"[{self.script}] step '{self.step}' failed "
            f"(exit={self.result.exit_code}): {self.result.display}"
        )


@dataclass(eq=False)
class LaunchFailure(StepFailure):
    kind = "launch_failure"

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return LAUNCH_FAILURE_CODE

    @property
    def hint(self) -> str | None:
        if not self.result.argv:
            return None
        tool = Path(self.result.argv[0]).name
        return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")

    def __str__(self) -> str:
        return (
            f"[{self.script}] step '{self.step}' could not be launched: "
            f"{self.result.launch_error} ({self.result.display})"
        )


@dataclass(eq=False)
class NonZeroExit(StepFailure):
    kind = "nonzero_exit"

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return normalize_exit_code(self.result.exit_code)


@dataclass(eq=False)
class Cancelled(StepFailure):
    kind = "cancelled"
    exit_code = CANCELLED_CODE

    def __str__(self) -> str:
        return f"[{self.script}] step '{self.step}' was interrupted: {self.result.display}"


def normalize_exit_code(code: int) -> int:
    """Map subprocess return codes onto process exit statuses (-N -> 128+N)."""
    if code < 0:
        return 128 + (-code)
    return code


def failure_for(result: ExecutionResult) -> StepFailure | None:
    """Classify a finished step. Returns None when the step succeeded."""
    if result.launch_error is not None:
        return LaunchFailure(result)
    if result.cancelled:
        return Cancelled(result)
    if result.exit_code != 0:
        return NonZeroExit(result)
    return None


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

class OutputTail:
    """Keeps only the last `limit` characters of a stream fed piece by piece."""

    def __init__(self, limit: Optional[int] = None):
        self.limit = OUTPUT_TAIL_CHARS if limit is None else limit
        self._pieces: Deque[str] = deque()
        self.kept = 0

    def append(self, text: str) -> None:
        self._pieces.append(text)
        self.kept += len(text)
        while self._pieces and self.kept - len(self._pieces[0]) >= self.limit:
            self.kept -= len(self._pieces.popleft())

    def text(self) -> str:
        joined = "".join(self._pieces)
        return joined[-self.limit:] if self.limit else ""


class CommandRunner:
    """
    Runs one external command at a time.

    stdout and stderr are merged and streamed to the console line by line;
    the result keeps the last OUTPUT_TAIL_CHARS characters. The call blocks
    until the child exits.
    """

    def __init__(
        self,
        root: str | Path = ".",
        *,
        env: Optional[Dict[str, str]] = None,
        echo: bool = True,
        console: Optional[Console] = None,
    ):
        self.root = Path(root).resolve()
        self.env = dict(env or {})
        self.echo = echo
        self._console = console

    @property
    def console(self) -> Console:
        return self._console or get_console()

    def __call__(self, step: Command, *, script: str = "") -> ExecutionResult:
        return self.run(step.argv[0], step.argv[1:], step.cwd, name=step.name, script=script)

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: str | Path | None = None,
        *,
        name: str | None = None,
        script: str = "",
    ) -> ExecutionResult:
        argv = (command, *args)
        name = name or command
        workdir = (self.root / (cwd or ".")).resolve()

        if not workdir.is_dir():
            return ExecutionResult(
                name=name,
                script=script,
                argv=argv,
                exit_code=LAUNCH_FAILURE_CODE,
                launch_error=f"working directory not found: {workdir}",
            )

        env = os.environ.copy()
        env.update(self.env)

        started = time.monotonic()
        try:
            proc = subprocess.Popen(
                list(argv),
                cwd=str(workdir),
                env=env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                bufsize=1,
            )
        except (OSError, ValueError) as e:
            # ValueError: argv the OS cannot take, e.g. an embedded NUL byte
            return ExecutionResult(
                name=name,
                script=script,
                argv=argv,
                exit_code=LAUNCH_FAILURE_CODE,
                duration=time.monotonic() - started,
                launch_error=getattr(e, "strerror", None) or str(e),
            )

        tail = OutputTail()
        cancelled = False
        try:
            assert proc.stdout is not None
            for line in iter(lambda: proc.stdout.readline(READ_CHUNK_CHARS), ""):
                tail.append(line)
                if self.echo:
                    self.console.print_output(line)
            returncode = proc.wait()
        except KeyboardInterrupt:
            cancelled = True
            returncode = self._stop(proc)
        finally:
            if proc.stdout is not None:
                proc.stdout.close()

        return ExecutionResult(
            name=name,
            script=script,
            argv=argv,
            exit_code=returncode,
            output=tail.text(),
            duration=time.monotonic() - started,
            cancelled=cancelled,
        )

    @staticmethod
    def _stop(proc: subprocess.Popen) -> int:
        """Terminate an interrupted child, escalating to kill after a grace period."""
        if proc.poll() is None:
            proc.send_signal(signal.SIGTERM)
            try:
                return proc.wait(timeout=TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                pass
            finally:
                # also reached on a second interrupt during the grace period
                if proc.poll() is None:
                    proc.kill()
        return proc.wait()
