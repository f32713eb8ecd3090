"""
Voxcribe — External Tools
==========================
Locating and installing the native executables the pipeline shells out to.

Exports
-------
FFMPEG, WHISPER     — ToolSpec configuration
locate              — resolve a tool to a path (local → global → placeholder)
candidate_paths     — every existing candidate, in priority order
ToolProvisioner     — download / extract / build when nothing resolves
"""

from app.tools.specs import FFMPEG, WHISPER, TOOLS, ToolSpec, InstallStrategy
from app.tools.locator import ToolLocation, ToolOrigin, locate, candidate_paths
from app.tools.provisioner import ProvisionedTool, ToolProvisioner

__all__ = [
    "FFMPEG",
    "WHISPER",
    "TOOLS",
    "ToolSpec",
    "InstallStrategy",
    "ToolLocation",
    "ToolOrigin",
    "locate",
    "candidate_paths",
    "ProvisionedTool",
    "ToolProvisioner",
]
