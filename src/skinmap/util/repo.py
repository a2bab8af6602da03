from __future__ import annotations
import os
from pathlib import Path

MODELS_DIR_ENV = "SKINMAP_MODELS_DIR"

def find_repo_root(start: Path | None = None) -> Path:
    """Walk upwards from `start` (default CWD) to the directory holding pyproject.toml."""
    origin = (start or Path.cwd()).resolve()
    for cur in (origin, *origin.parents):
        if (cur / "pyproject.toml").exists():
            return cur
    return origin

def default_models_dir(repo_root: Path | None = None) -> Path:
    override = os.environ.get(MODELS_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return (repo_root or find_repo_root()) / "inputs" / "models" / "mediapipe"
