# sequencer.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Mapping, Optional, Tuple

from .model import ExecutionResult, PlannedStep, RunContext, Script, ScriptRef
from .runner import CommandRunner, ScriptError, failure_for
from .ui.console import Console, get_console

# Anything that can execute one Command; CommandRunner in production.
RunFn = Callable[..., ExecutionResult]


# ----------------------------------------------------------------------
# Errors
# ----------------------------------------------------------------------

@dataclass(eq=False)
class UnknownScript(ScriptError):
    name: str
    known: List[str] = field(default_factory=list)
    referenced_by: Optional[str] = None

    kind = "unknown_script"

    def __str__(self) -> str:
        where = f" (referenced by '{self.referenced_by}')" if self.referenced_by else ""
        return f"Unknown script '{self.name}'{where}. Known scripts: {self.known}"


@dataclass(eq=False)
class CyclicReference(ScriptError):
    path: List[str]

    kind = "cyclic_reference"

    def __str__(self) -> str:
        return f"Script references form a cycle: {' -> '.join(self.path)}"


# ----------------------------------------------------------------------
# Sequencer
# ----------------------------------------------------------------------

class Sequencer:
    """
    Resolves named scripts into flat command plans and runs them in order.

    A run stops at the first failing step and never runs compensating
    steps on its own: if `tests` fails after `start`, `shutdown` is left
    for the operator, and the raised StepFailure lists it in
    `pending_cleanup`.
    """

    def __init__(
        self,
        registry: Mapping[str, Script],
        runner: Optional[RunFn] = None,
        *,
        console: Optional[Console] = None,
        manifest_name: str = "<builtin>",
    ):
        self.registry = registry
        self.runner = runner or CommandRunner()
        self.manifest_name = manifest_name
        self._console = console
        self._lock = threading.Lock()

    @property
    def console(self) -> Console:
        return self._console or get_console()

    # ---- resolution ----

    def resolve(self, name: str) -> List[PlannedStep]:
        """
        Expand `name` depth-first into the commands it runs, in order.

        Uses an explicit stack so a malformed manifest fails with
        CyclicReference instead of exhausting the interpreter stack.
        """
        self._lookup(name, referenced_by=None)

        plan: List[PlannedStep] = []
        path: List[str] = [name]
        on_path = {name}
        # (script name, remaining steps, index into plan where it started)
        stack: List[Tuple[str, Iterator, int]] = [(name, iter(self.registry[name].steps), 0)]

        while stack:
            current, steps, start = stack[-1]
            step = next(steps, None)

            if step is None:
                stack.pop()
                on_path.discard(path.pop())
                if len(plan) > start:
                    plan[-1].closes.append(current)
                continue

            if isinstance(step, ScriptRef):
                target = step.script
                if target in on_path:
                    raise CyclicReference(path=path[path.index(target):] + [target])
                self._lookup(target, referenced_by=current)
                path.append(target)
                on_path.add(target)
                stack.append((target, iter(self.registry[target].steps), len(plan)))
            else:
                plan.append(PlannedStep(command=step, path=tuple(path)))

        return plan

    def check(self) -> List[ScriptError]:
        """Resolve every registered script, collecting (not raising) errors."""
        problems: List[ScriptError] = []
        for name in sorted(self.registry):
            try:
                self.resolve(name)
            except ScriptError as e:
                problems.append(e)
        return problems

    def _lookup(self, name: str, *, referenced_by: Optional[str]) -> Script:
        script = self.registry.get(name)
        if script is None:
            raise UnknownScript(name=name, known=sorted(self.registry), referenced_by=referenced_by)
        return script

    # ---- execution ----

    def run(self, name: str) -> RunContext:
        """
        Run a top-level script and return its trace.

        Raises UnknownScript / CyclicReference before anything runs, or a
        StepFailure (LaunchFailure, NonZeroExit, Cancelled) carrying the
        trace once a step fails.
        """
        with self._lock:
            plan = self.resolve(name)
            context = RunContext(script=name)
            console = self.console
            console.print_run_started(name, self.manifest_name, len(plan))

            # cleanup scripts owed by scripts entered so far
            owed: List[str] = []

            for index, planned in enumerate(plan, 1):
                console.print_step(index, len(plan), planned)
                for entered in planned.path:
                    cleanup = self.registry[entered].cleanup
                    if cleanup and cleanup not in owed:
                        owed.append(cleanup)

                result = self.runner(planned.command, script=planned.script)
                context.append(result)

                failure = failure_for(result)
                if failure is not None:
                    failure.context = context
                    failure.pending_cleanup = list(owed)
                    raise failure

                console.print_success(result)
                for closed in planned.closes:
                    if closed in owed:
                        owed.remove(closed)

            return context

    def execute(self, name: str) -> ExecutionResult:
        """Run a script and return its final result (synthetic for empty scripts)."""
        context = self.run(name)
        return context.last or ExecutionResult.synthetic_success(name)
