# devcycle_scripts.py
# Example manifest for a compose + sqlx + cargo service; picked up when devcycle runs here.
from __future__ import annotations

from devcycle.dsl import manifest, script, ref
from devcycle.step_workflows.compose import compose_up, compose_down
from devcycle.step_workflows.migrations import migrate_run, migrate_revert
from devcycle.step_workflows.cargo import cargo, cargo_test, cargo_run


def scripts():
    return manifest(
        # Bring up postgres and apply pending migrations
        script(
            "start",
            compose_up(detached=True),
            migrate_run(),
            description="bring up the container stack and apply pending migrations",
            cleanup="shutdown",
        ),

        # Revert the last migration and stop the stack
        script(
            "shutdown",
            migrate_revert(),
            compose_down(),
            description="revert the last migration and tear down the container stack",
        ),

        script("tests", ref("start"), cargo_test(), ref("shutdown")),
        script("app", ref("start"), cargo_run(), ref("shutdown")),

        # Build only; no stack needed
        script("build", cargo("build", "--locked", name="Build")),
    )
