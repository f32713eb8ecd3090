"""
Voxcribe — Platform Tool Locator
Module : app/tools/locator.py

Resolves where an external tool lives, in this order:

  1. Packaged local candidates under bin_dir (several names per tool)
  2. Global PATH lookup via the platform probe command (where / which)
  3. The canonical local install target, returned as a placeholder

Nothing is cached: tools may appear (provisioning) or disappear (cleanup,
manual deletion) between requests, so every call re-probes.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional

from loguru import logger

from app.config import Settings, get_settings
from app.tools.specs import ToolSpec, current_platform

# Seconds allowed for `where` / `which`
_PROBE_TIMEOUT = 10


class ToolOrigin(str, Enum):
    local = "local"
    global_ = "global"
    just_installed = "just-installed"
    placeholder = "placeholder"


@dataclass(frozen=True)
class ToolLocation:
    path:   Path
    origin: ToolOrigin

    @property
    def found(self) -> bool:
        return self.origin is not ToolOrigin.placeholder


def is_executable_file(path: Path) -> bool:
    if not path.is_file():
        return False
    if current_platform() == "win32":
        return True
    return os.access(path, os.X_OK)


def local_candidates(spec: ToolSpec, settings: Optional[Settings] = None) -> List[Path]:
    """Absolute paths of every local candidate, existing or not, in priority order."""
    settings = settings or get_settings()
    bin_dir = Path(settings.bin_dir).resolve()
    return [bin_dir / rel for rel in spec.target().candidates]


def install_target(spec: ToolSpec, settings: Optional[Settings] = None) -> Path:
    """Where a freshly provisioned tool is expected to land."""
    return local_candidates(spec, settings)[0]


def _probe_global(name: str) -> Optional[Path]:
    """Ask the OS where `name` lives on PATH. None when absent or the probe fails."""
    probe = ["where", name] if current_platform() == "win32" else ["which", name]
    try:
        proc = subprocess.run(
            probe,
            capture_output=True,
            text=True,
            timeout=_PROBE_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug(f"[Locator] Probe '{' '.join(probe)}' could not run: {exc}")
        return None

    if proc.returncode != 0:
        return None
    # `where` lists every match; the first one is what the shell would run
    for line in proc.stdout.splitlines():
        line = line.strip()
        if line:
            return Path(line)
    return None


def global_candidates(spec: ToolSpec) -> List[Path]:
    found: List[Path] = []
    for name in spec.global_names:
        hit = _probe_global(name)
        if hit is not None and is_executable_file(hit) and hit not in found:
            found.append(hit)
    return found


def candidate_paths(spec: ToolSpec, settings: Optional[Settings] = None) -> List[Path]:
    """
    Every candidate currently present on disk, local first then global,
    in declared priority order without duplicates.
    """
    present: List[Path] = []
    for path in local_candidates(spec, settings):
        if path.is_file() and path not in present:
            present.append(path)
    for path in global_candidates(spec):
        if path not in present:
            present.append(path)
    return present


def locate(spec: ToolSpec, settings: Optional[Settings] = None) -> ToolLocation:
    """
    Resolve a tool to a single path.

    Returns
    -------
    ToolLocation
        origin=local / global when an executable was found, otherwise
        origin=placeholder with the (non-existent) canonical install path.
    """
    for path in local_candidates(spec, settings):
        if is_executable_file(path):
            logger.debug(f"[Locator] {spec.name}: local → {path}")
            return ToolLocation(path=path, origin=ToolOrigin.local)

    hits = global_candidates(spec)
    if hits:
        logger.debug(f"[Locator] {spec.name}: global → {hits[0]}")
        return ToolLocation(path=hits[0], origin=ToolOrigin.global_)

    target = install_target(spec, settings)
    logger.debug(f"[Locator] {spec.name}: not found, install target → {target}")
    return ToolLocation(path=target, origin=ToolOrigin.placeholder)
