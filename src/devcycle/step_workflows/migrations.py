# step_workflows/migrations.py
from __future__ import annotations

from ..model import Command
from .. import settings


def migrate_run(
    name: str = "Apply pending migrations",
    *,
    source: str | None = None,
    cwd: str | None = None,
) -> Command:
    argv = [*settings.MIGRATE, "run"]
    if source:
        argv.extend(["--source", source])
    return Command(name=name, argv=tuple(argv), cwd=cwd)


def migrate_revert(
    name: str = "Revert last migration",
    *,
    source: str | None = None,
    cwd: str | None = None,
) -> Command:
    """Revert only the most recently applied migration."""
    argv = [*settings.MIGRATE, "revert"]
    if source:
        argv.extend(["--source", source])
    return Command(name=name, argv=tuple(argv), cwd=cwd)
