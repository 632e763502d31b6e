# src/devcycle/dsl.py
from __future__ import annotations

import shlex
from dataclasses import replace
from typing import List

from .model import Command, Script, ScriptRef, Step


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Command:
    """Create a command step from a shell-like string (no shell is involved)."""
    return Command(name=name, argv=tuple(shlex.split(cmd)), cwd=cwd)


def cmd(name: str, *argv: str, cwd: str | None = None) -> Command:
    """Create a command step from an explicit argv."""
    return Command(name=name, argv=tuple(argv), cwd=cwd)


def ref(script_name: str) -> ScriptRef:
    """Reference another script; expands to all of its steps."""
    return ScriptRef(script=script_name)


# ---------------------------------------------------------------------
# Functional Script helper
# ---------------------------------------------------------------------

def script(
    name: str,
    *steps: Step,  # allow: script("x", sh(...), ref(...))
    description: str | None = None,
    cleanup: str | None = None,
    cwd: str | None = None,  # default cwd applied to commands missing cwd
) -> Script:
    steps_final: List[Step] = list(steps)

    if cwd is not None:
        steps_final = [
            replace(s, cwd=cwd) if isinstance(s, Command) and s.cwd is None else s
            for s in steps_final
        ]

    return Script(
        name=name,
        steps=tuple(steps_final),
        description=description,
        cleanup=cleanup,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class ScriptBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[Step] = []
        self._description: str | None = None
        self._cleanup: str | None = None

    def uses(self, *script_names: str):
        self._steps.extend(ScriptRef(script=n) for n in script_names)
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd))
        return self

    def describe(self, text: str):
        self._description = text
        return self

    def cleaned_up_by(self, script_name: str):
        self._cleanup = script_name
        return self

    def build(self) -> Script:
        return Script(
            name=self.name,
            steps=tuple(self._steps),
            description=self._description,
            cleanup=self._cleanup,
        )


def build(name: str) -> ScriptBuilder:
    """Convenience: build('tests').uses('start').define_step(...).build()"""
    return ScriptBuilder(name)


# ---------------------------------------------------------------------
# Manifest helper (single-file story)
# ---------------------------------------------------------------------

def manifest(*scripts: Script) -> List[Script]:
    """
    Manifest definition helper.

    Users can write, in devcycle_scripts.py:
        from devcycle import manifest, script, sh, ref

        def scripts():
            return manifest(
                script("start", sh(...)),
                script("tests", ref("start"), sh(...)),
            )

    Or define SCRIPTS directly:
        SCRIPTS = manifest(script(...), script(...))
    """
    return list(scripts)
