from __future__ import annotations
import os
import shlex

MANIFEST = os.environ.get("DEVCYCLE_MANIFEST")
STATE_DIR = os.environ.get("DEVCYCLE_STATE_DIR", ".devcycle")

# Executables the provisioner puts on PATH; values may carry leading args.
COMPOSE = shlex.split(os.environ.get("DEVCYCLE_COMPOSE", "docker compose"))
MIGRATE = shlex.split(os.environ.get("DEVCYCLE_MIGRATE", "sqlx migrate"))
CARGO = shlex.split(os.environ.get("DEVCYCLE_CARGO", "cargo"))

LOCK_FILE = "run.lock"
