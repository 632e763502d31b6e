"""Console output formatting utilities for devcycle."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from devcycle.model import ExecutionResult, PlannedStep, RunContext, Script


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        script: str,
        manifest: str,
        step_count: int,
    ) -> None:
        """Print run start information."""
        print("\nRUN STARTED")
        print(f"Script: {script}")
        print(f"Manifest: {manifest}")
        print(f"Steps: {step_count}")
        print()

    def print_step(self, index: int, total: int, planned: "PlannedStep") -> None:
        """Print step start message."""
        origin = " > ".join(planned.path)
        print(f"\nSTEP {index}/{total}: {planned.command.name} [{origin}]")
        print(f"$ {planned.command.display}")

    def print_output(self, line: str) -> None:
        """Echo one line of child process output."""
        sys.stdout.write(line)
        sys.stdout.flush()

    def print_success(self, result: "ExecutionResult") -> None:
        """Print success message."""
        print(f"STATUS: success ({result.duration:.1f}s)")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        output: Optional[str] = None,
    ) -> None:
        """
        Print step failure message.

        Args:
            name: Step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
            output: Captured output, only shown in debug mode
        """
        print(f"STEP FAILED: {name}", file=sys.stderr)
        if exit_code is not None:
            print(f"Exit code: {exit_code}", file=sys.stderr)
        if hint:
            print(f"Hint: {hint}", file=sys.stderr)
        print(f"Error: {reason}", file=sys.stderr)
        if self.debug and output:
            print("Output (tail):", file=sys.stderr)
            print(output[-4000:], file=sys.stderr)

    def print_cleanup_hint(self, scripts: Iterable[str]) -> None:
        """Tell the operator which scripts release what the failed run acquired."""
        scripts = list(scripts)
        if not scripts:
            return
        print("\nResources acquired by this run were not released.", file=sys.stderr)
        for name in scripts:
            print(f"  devcycle {name}", file=sys.stderr)

    def print_results(self, context: "RunContext") -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for result in context:
            if result.ok:
                status_display = "SUCCESS"
            elif result.cancelled:
                status_display = "CANCELLED"
            elif result.launch_error is not None:
                status_display = "NOT LAUNCHED"
            else:
                status_display = f"FAILED (exit={result.exit_code})"
            print(f"  {result.script}/{result.name}: {status_display} ({result.duration:.1f}s)")
        print(f"Total: {len(context)} step(s) in {context.duration:.1f}s")

    def print_script(self, script: "Script") -> None:
        """Print one script definition."""
        from devcycle.model import ScriptRef

        title = script.name
        if script.description:
            title = f"{title}  ({script.description})"
        print(title)
        if not script.steps:
            print("  (no steps)")
        for step in script.steps:
            if isinstance(step, ScriptRef):
                print(f"  -> {step.script}")
            else:
                print(f"  $ {step.display}")
        if script.cleanup:
            print(f"  cleanup: {script.cleanup}")

    def print_plan(self, script: str, plan: list["PlannedStep"]) -> None:
        """Print a resolved plan without running it."""
        self.print_header(f"PLAN: {script}")
        if not plan:
            print("  (no steps)")
        for i, planned in enumerate(plan, 1):
            origin = " > ".join(planned.path)
            print(f"  {i}. {planned.command.display}  [{origin}]")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
