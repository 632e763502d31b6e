from . import manifest as _manifest_module  # load submodule before binding the dsl `manifest` name
from .dsl import sh, cmd, ref, script, manifest, ScriptBuilder, build
from .model import Command, ScriptRef, Script, ExecutionResult, RunContext
from .runner import CommandRunner
from .sequencer import Sequencer

__all__ = [
    "sh", "cmd", "ref", "script", "manifest", "ScriptBuilder", "build",
    "Command", "ScriptRef", "Script", "ExecutionResult", "RunContext",
    "CommandRunner", "Sequencer",
]
