from __future__ import annotations

import pytest

from devcycle import settings
from devcycle.manifest import build_registry, default_scripts
from devcycle.model import Command, ExecutionResult
from devcycle.runner import LAUNCH_FAILURE_CODE


class FakeRunner:
    """Records every command it is asked to run; results keyed by step name."""

    def __init__(self, exit_codes=None, launch_errors=None, cancelled=None):
        self.calls: list[Command] = []
        self.exit_codes = dict(exit_codes or {})
        self.launch_errors = dict(launch_errors or {})
        self.cancelled = set(cancelled or ())

    def __call__(self, step: Command, *, script: str = "") -> ExecutionResult:
        self.calls.append(step)
        launch_error = self.launch_errors.get(step.name)
        code = LAUNCH_FAILURE_CODE if launch_error else self.exit_codes.get(step.name, 0)
        return ExecutionResult(
            name=step.name,
            script=script,
            argv=step.argv,
            exit_code=code,
            output=f"ran {step.name}\n",
            duration=0.01,
            launch_error=launch_error,
            cancelled=step.name in self.cancelled,
        )

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.calls]


@pytest.fixture(autouse=True)
def default_toolchain(monkeypatch):
    # keep tests independent of DEVCYCLE_* in the caller's environment
    monkeypatch.setattr(settings, "MANIFEST", None)
    monkeypatch.setattr(settings, "COMPOSE", ["docker", "compose"])
    monkeypatch.setattr(settings, "MIGRATE", ["sqlx", "migrate"])
    monkeypatch.setattr(settings, "CARGO", ["cargo"])


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def lifecycle_registry():
    return build_registry(default_scripts())
