# step_workflows/compose.py
from __future__ import annotations

from ..model import Command
from .. import settings


# ---------------------------------------------------------------------
# Container stack helpers
# ---------------------------------------------------------------------

def compose_up(
    name: str = "Start container stack",
    *,
    detached: bool = True,
    services: list[str] | None = None,
    cwd: str | None = None,
) -> Command:
    """Bring the container stack up. Blocks until compose returns."""
    argv = [*settings.COMPOSE, "up"]
    if detached:
        argv.append("-d")
    argv.extend(services or [])
    return Command(name=name, argv=tuple(argv), cwd=cwd)


def compose_down(
    name: str = "Stop container stack",
    *,
    volumes: bool = False,
    cwd: str | None = None,
) -> Command:
    """Tear the container stack down."""
    argv = [*settings.COMPOSE, "down"]
    if volumes:
        # also drops named volumes, i.e. the database contents
        argv.append("--volumes")
    return Command(name=name, argv=tuple(argv), cwd=cwd)
