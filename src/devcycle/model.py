# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Command:
    """A literal external command (step) inside a script."""
    name: str
    argv: Tuple[str, ...]
    cwd: str | None = None

    def __post_init__(self) -> None:
        if not self.argv:
            raise ValueError(f"command {self.name!r} has an empty argv")

    @property
    def display(self) -> str:
        return " ".join(self.argv)


@dataclass(frozen=True)
class ScriptRef:
    """A step that expands to every step of another script."""
    script: str


Step = Union[Command, ScriptRef]


@dataclass(frozen=True)
class Script:
    """
    A named, ordered sequence of steps.

    `cleanup` names the script that releases what this one acquires
    (e.g. start -> shutdown). It is only used to tell the operator what
    to run after a failure; it is never invoked automatically.
    """
    name: str
    steps: Tuple[Step, ...] = ()
    description: str | None = None
    cleanup: str | None = None


@dataclass
class PlannedStep:
    """One entry of a resolved (flattened) script."""
    command: Command
    path: Tuple[str, ...]                       # e.g. ("tests", "start")
    closes: List[str] = field(default_factory=list)

    @property
    def script(self) -> str:
        # innermost script owning the command
        return self.path[-1]


@dataclass(frozen=True)
class ExecutionResult:
    name: str
    script: str
    argv: Tuple[str, ...]
    exit_code: int
    output: str = ""
    duration: float = 0.0
    launch_error: Optional[str] = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and self.launch_error is None and not self.cancelled

    @property
    def display(self) -> str:
        return " ".join(self.argv)

    @classmethod
    def synthetic_success(cls, script: str) -> ExecutionResult:
        """Result reported for a script that expands to zero steps."""
        return cls(name=script, script=script, argv=(), exit_code=0)


@dataclass
class RunContext:
    """Ordered trace of results for one top-level invocation."""
    script: str
    results: List[ExecutionResult] = field(default_factory=list)

    def append(self, result: ExecutionResult) -> None:
        self.results.append(result)

    @property
    def last(self) -> ExecutionResult | None:
        return self.results[-1] if self.results else None

    @property
    def duration(self) -> float:
        return sum(r.duration for r in self.results)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ExecutionResult]:
        return iter(self.results)
