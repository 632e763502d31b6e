# step_workflows/cargo.py
from __future__ import annotations

from ..model import Command
from .. import settings


def cargo(subcommand: str, *args: str, name: str | None = None, cwd: str | None = None) -> Command:
    """
    Build-toolchain payload step, e.g. cargo("test") or cargo("run", "--release").
    """
    argv = (*settings.CARGO, subcommand, *args)
    return Command(name=name or f"cargo {subcommand}", argv=argv, cwd=cwd)


def cargo_test(*args: str, cwd: str | None = None) -> Command:
    return cargo("test", *args, name="Run test suite", cwd=cwd)


def cargo_run(*args: str, cwd: str | None = None) -> Command:
    return cargo("run", *args, name="Run application", cwd=cwd)
