# cli.py
from __future__ import annotations

import contextlib
import sys

import click

from devcycle import settings
from devcycle.lock import RunLock
from devcycle.manifest import (
    BUILTIN,
    LIFECYCLE_SCRIPTS,
    ManifestError,
    build_registry,
    discover_manifest,
    load_manifest,
)
from devcycle.runner import CommandRunner, ScriptError, StepFailure
from devcycle.sequencer import Sequencer
from devcycle.ui.console import Console, get_console, set_console

ERROR_TITLES = {
    "unknown_script": "Unknown script",
    "cyclic_reference": "Cyclic script reference",
    "manifest_error": "Failed to load manifest",
    "lock_held": "Run lock held",
}

SUGGESTIONS = {
    "unknown_script": "Run `devcycle list` to see the available scripts.",
    "cyclic_reference": "Run `devcycle check` to validate every script in the manifest.",
    "lock_held": "Wait for it to finish, or pass --no-lock if you are sure it is safe.",
}


def _fail(ctx: click.Context, e: Exception) -> None:
    console = get_console()
    if isinstance(e, ScriptError):
        console.print_error(
            ERROR_TITLES.get(e.kind, "Error"),
            str(e),
            suggestion=SUGGESTIONS.get(e.kind),
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(e.exit_code)
    console.print_exception(e)
    sys.exit(1)


def load_sequencer(ctx: click.Context) -> Sequencer:
    """Build a Sequencer from the manifest selected on the command line."""
    console = get_console()
    try:
        path = discover_manifest(ctx.obj.get("manifest"))
        registry = build_registry(load_manifest(path))
    except ManifestError as e:
        _fail(ctx, e)
    except Exception as e:
        console.print_error(
            "Failed to load manifest",
            "The manifest raised an error while loading.",
            details=[str(e)],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)

    manifest_name = path.name if path is not None else BUILTIN
    console.print_debug(f"Loaded {len(registry)} script(s) from {manifest_name}")
    return Sequencer(
        registry,
        CommandRunner(ctx.obj.get("root", ".")),
        manifest_name=manifest_name,
    )


def invoke_script(ctx: click.Context, name: str) -> None:
    """Run one top-level script and exit with its status."""
    console = get_console()
    sequencer = load_sequencer(ctx)

    if ctx.obj.get("lock", True):
        guard = RunLock(ctx.obj.get("state_dir"), script=name)
    else:
        guard = contextlib.nullcontext()

    try:
        with guard:
            context = sequencer.run(name)
    except StepFailure as e:
        console.print_failure(
            e.step,
            str(e),
            exit_code=e.result.exit_code,
            hint=getattr(e, "hint", None),
            output=e.result.output,
        )
        if e.context is not None:
            console.print_results(e.context)
        console.print_cleanup_hint(e.pending_cleanup)
        sys.exit(e.exit_code)
    except ScriptError as e:
        _fail(ctx, e)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(ctx, e)

    console.print_results(context)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and captured output on failure)",
)
@click.option(
    "--manifest",
    default=None,
    help="Manifest file (.py or .json); defaults to $DEVCYCLE_MANIFEST, then "
    "devcycle_scripts.py or devcycle.json if present, else the built-in scripts",
)
@click.option(
    "--root",
    default=".",
    type=click.Path(file_okay=False),
    show_default=True,
    help="Base directory for step working directories",
)
@click.option("--state-dir", default=settings.STATE_DIR, show_default=True, help="Directory for the run lock")
@click.option("--lock/--no-lock", default=True, show_default=True, help="Hold the run lock while a script runs")
@click.pass_context
def cli(ctx, debug, manifest, root, state_dir, lock):
    """devcycle: start, test, run and shut down a local development stack."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj.update(debug=debug, manifest=manifest, root=root, state_dir=state_dir, lock=lock)


def _lifecycle_command(name: str) -> click.Command:
    @click.command(name=name, help=f"Run the '{name}' script.")
    @click.pass_context
    def command(ctx):
        invoke_script(ctx, name)

    return command


for _name in LIFECYCLE_SCRIPTS:
    cli.add_command(_lifecycle_command(_name))


@cli.command()
@click.argument("name")
@click.pass_context
def run(ctx, name):
    """Run any script defined in the manifest."""
    invoke_script(ctx, name)


@cli.command(name="list")
@click.pass_context
def list_scripts(ctx):
    """List scripts and their steps."""
    console = get_console()
    sequencer = load_sequencer(ctx)
    for name in sorted(sequencer.registry):
        console.print_script(sequencer.registry[name])


@cli.command()
@click.argument("name")
@click.pass_context
def plan(ctx, name):
    """Print the flattened steps of a script without running them."""
    console = get_console()
    sequencer = load_sequencer(ctx)
    try:
        steps = sequencer.resolve(name)
    except ScriptError as e:
        _fail(ctx, e)
    console.print_plan(name, steps)


@cli.command()
@click.pass_context
def check(ctx):
    """Resolve every script and report unknown references and cycles."""
    console = get_console()
    sequencer = load_sequencer(ctx)
    problems = sequencer.check()
    if problems:
        console.print_error(
            "Manifest check failed",
            f"{len(problems)} problem(s) found:",
            details=[str(p) for p in problems],
        )
        sys.exit(1)
    console.print_info(f"OK: {len(sequencer.registry)} script(s) resolve cleanly")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
