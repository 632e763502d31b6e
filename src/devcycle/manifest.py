# manifest.py
from __future__ import annotations

import json
import runpy
import shlex
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from . import settings
from .dsl import manifest, ref, script
from .model import Command, Script, ScriptRef, Step
from .runner import ScriptError
from .step_workflows.cargo import cargo_run, cargo_test
from .step_workflows.compose import compose_down, compose_up
from .step_workflows.migrations import migrate_revert, migrate_run

PYTHON_MANIFEST = "devcycle_scripts.py"
JSON_MANIFEST = "devcycle.json"
BUILTIN = "<builtin>"

LIFECYCLE_SCRIPTS = ("start", "shutdown", "tests", "app")


@dataclass(eq=False)
class ManifestError(ScriptError):
    message: str
    path: Optional[str] = None

    kind = "manifest_error"

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


# ----------------------------------------------------------------------
# Built-in lifecycle
# ----------------------------------------------------------------------

def default_scripts() -> List[Script]:
    """start / shutdown / tests / app for a compose + sqlx + cargo project."""
    return manifest(
        script(
            "start",
            compose_up(detached=True),
            migrate_run(),
            description="bring up the container stack and apply pending migrations",
            cleanup="shutdown",
        ),
        script(
            "shutdown",
            migrate_revert(),
            compose_down(),
            description="revert the last migration and tear down the container stack",
        ),
        script(
            "tests",
            ref("start"),
            cargo_test(),
            ref("shutdown"),
            description="run the test suite against a fresh stack",
        ),
        script(
            "app",
            ref("start"),
            cargo_run(),
            ref("shutdown"),
            description="run the application against a fresh stack",
        ),
    )


def build_registry(scripts: Iterable[Script]) -> Mapping[str, Script]:
    """Index scripts by name. Read-only once built."""
    by_name: Dict[str, Script] = {}
    for s in scripts:
        if not isinstance(s, Script):
            raise ManifestError(f"Expected Script, got {type(s).__name__}")
        if s.name in by_name:
            raise ManifestError(f"Duplicate script name: {s.name}")
        by_name[s.name] = s
    return MappingProxyType(by_name)


# ----------------------------------------------------------------------
# Python manifests
# ----------------------------------------------------------------------

def load_python_manifest(path: str | Path) -> List[Script]:
    """
    Load scripts from a python file.

    The file must define either:
      - scripts() -> List[Script]
      - SCRIPTS = [Script, ...]
    """
    py_path = Path(path).expanduser().resolve()
    module_name = f"devcycle_manifest_{py_path.stem}"
    globals_dict = runpy.run_path(str(py_path), run_name=module_name)

    found = None
    if "scripts" in globals_dict and callable(globals_dict["scripts"]):
        found = globals_dict["scripts"]()
    elif "SCRIPTS" in globals_dict:
        found = globals_dict["SCRIPTS"]

    if not isinstance(found, list) or not all(isinstance(s, Script) for s in found):
        raise ManifestError(
            "Manifest must return/define a List[Script]. "
            "Define scripts() -> List[Script] or SCRIPTS = [Script, ...].",
            path=str(py_path),
        )
    return found


# ----------------------------------------------------------------------
# JSON manifests
# ----------------------------------------------------------------------

class CommandSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    run: Union[str, List[str]]
    name: Optional[str] = None
    cwd: Optional[str] = None

    @field_validator("run")
    @classmethod
    def _not_empty(cls, v):
        if not v or (isinstance(v, list) and not all(v)):
            raise ValueError("run must not be empty")
        return v


class ReferenceSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    script: str


StepSpec = Union[str, CommandSpec, ReferenceSpec]


class ScriptSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    steps: List[StepSpec] = Field(default_factory=list)
    description: Optional[str] = None
    cleanup: Optional[str] = None


class ManifestSpec(BaseModel):
    model_config = ConfigDict(extra="forbid")

    scripts: Dict[str, Union[List[StepSpec], ScriptSpec]]


def _to_step(spec: StepSpec) -> Step:
    if isinstance(spec, ReferenceSpec):
        return ScriptRef(script=spec.script)
    if isinstance(spec, str):
        argv = tuple(shlex.split(spec))
        return Command(name=spec, argv=argv)
    argv = tuple(spec.run) if isinstance(spec.run, list) else tuple(shlex.split(spec.run))
    return Command(name=spec.name or " ".join(argv), argv=argv, cwd=spec.cwd)


def parse_manifest(data: dict) -> List[Script]:
    """Turn decoded manifest data into scripts (validated with pydantic)."""
    try:
        spec = ManifestSpec.model_validate(data)
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest: {e}") from e

    out: List[Script] = []
    for name, body in spec.scripts.items():
        if isinstance(body, list):
            body = ScriptSpec(steps=body)
        try:
            steps = tuple(_to_step(s) for s in body.steps)
        except ValueError as e:
            # shlex errors (unbalanced quotes) and empty commands
            raise ManifestError(f"Invalid step in script '{name}': {e}") from e
        out.append(Script(name=name, steps=steps, description=body.description, cleanup=body.cleanup))
    return out


def load_json_manifest(path: str | Path) -> List[Script]:
    json_path = Path(path).expanduser().resolve()
    try:
        data = json.loads(json_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ManifestError(f"Manifest is not valid JSON: {e}", path=str(json_path)) from e
    try:
        return parse_manifest(data)
    except ManifestError as e:
        e.path = str(json_path)
        raise


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------

def find_manifest_files(directory: str | Path = ".") -> list[Path]:
    base = Path(directory)
    return [p for p in (base / PYTHON_MANIFEST, base / JSON_MANIFEST) if p.exists()]


def discover_manifest(manifest_arg: str | None, directory: str | Path = ".") -> Path | None:
    """
    Pick the manifest to use: explicit argument, then DEVCYCLE_MANIFEST,
    then a manifest file in `directory`. None means the built-in scripts.
    """
    chosen = manifest_arg or settings.MANIFEST
    if chosen:
        path = Path(chosen)
        if not path.exists():
            raise ManifestError("Manifest file not found", path=str(path))
        return path

    found = find_manifest_files(directory)
    if len(found) > 1:
        raise ManifestError(
            "Multiple manifest files found: " + ", ".join(p.name for p in found)
            + ". Pass --manifest to choose one."
        )
    return found[0] if found else None


def load_manifest(path: str | Path | None) -> List[Script]:
    if path is None:
        return default_scripts()
    path = Path(path)
    if path.suffix == ".py":
        return load_python_manifest(path)
    if path.suffix == ".json":
        return load_json_manifest(path)
    raise ManifestError(f"Unsupported manifest type '{path.suffix}' (use .py or .json)", path=str(path))
