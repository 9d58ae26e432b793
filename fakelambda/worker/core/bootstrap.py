"""
Where: fakelambda/worker/core/bootstrap.py
What: Stage the bootstrap programs child processes run into a shared directory.
Why: Child interpreters need the programs at a stable path outside the package.
"""

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .runtimes import NODEJS, PYTHON

logger = logging.getLogger("worker.bootstrap")

RUNTIMES_DIR = Path(__file__).resolve().parent.parent / "runtimes"

BOOTSTRAP_FILES = {
    PYTHON: "worker.py",
    NODEJS: "worker.js",
}


@dataclass(frozen=True)
class StagedBootstrap:
    """Paths of the staged bootstrap programs."""

    python: Path
    nodejs: Path

    def for_family(self, family: str) -> Path:
        return self.python if family == PYTHON else self.nodejs


_staged: Dict[str, StagedBootstrap] = {}


def ensure_bootstrap_staged(target_dir: Optional[str] = None) -> StagedBootstrap:
    """
    Copy the bootstrap programs into target_dir once per process.

    Later calls for the same directory return the cached paths without
    touching the filesystem.
    """
    if target_dir is None:
        from ..config import config

        target_dir = config.BOOTSTRAP_DIR

    key = os.path.abspath(target_dir)
    staged = _staged.get(key)
    if staged is not None:
        return staged

    target = Path(key)
    try:
        target.mkdir(parents=True, exist_ok=True)
        paths = {}
        for family, filename in BOOTSTRAP_FILES.items():
            destination = target / filename
            shutil.copyfile(RUNTIMES_DIR / filename, destination)
            paths[family] = destination
    except OSError as e:
        logger.error(f"Could not copy bootstrap programs into {target}: {e}")
        raise

    staged = StagedBootstrap(python=paths[PYTHON], nodejs=paths[NODEJS])
    _staged[key] = staged
    logger.debug("Bootstrap programs staged in %s", target)
    return staged
