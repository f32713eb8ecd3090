"""
Voxcribe — External Tool Specifications
Module : app/tools/specs.py

Static description of the two native tools the pipeline depends on: FFmpeg
(resampler) and whisper.cpp (speech-to-text engine).

Releases of both tools rename their executables over time (whisper.cpp went
main → whisper → whisper-cli), so every lookup is an ordered list of name
variants per platform rather than branching code.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List


class InstallStrategy(str, Enum):
    archive_extract = "archive-extract"
    compile_from_source = "compile-from-source"


@dataclass(frozen=True)
class PlatformTarget:
    """
    How to find and install a tool on one platform.

    Attributes:
        candidates        : Relative paths under bin_dir, highest priority first.
        sources           : Download URLs, primary first, then mirrors.
        strategy          : archive-extract | compile-from-source.
        executable_names  : Acceptable names inside a downloaded archive.
        build_outputs     : Paths (relative to the source root) a successful
                            build must produce. compile-from-source only.
    """
    candidates:        List[str]
    sources:           List[str]
    strategy:          InstallStrategy = InstallStrategy.archive_extract
    executable_names:  List[str]       = field(default_factory=list)
    build_outputs:     List[str]       = field(default_factory=list)

    def __post_init__(self):
        if not self.candidates:
            raise ValueError("PlatformTarget requires at least one candidate")


@dataclass(frozen=True)
class ToolSpec:
    """
    Attributes:
        name             : Human-readable tool name used in logs and errors.
        platforms        : PlatformTarget per platform key (win32 | darwin | linux).
        global_names     : Names probed on PATH when nothing is packaged locally.
        deprecated_names : Executables known to be deprecation stubs.
    """
    name:              str
    platforms:         Dict[str, PlatformTarget]
    global_names:      List[str] = field(default_factory=list)
    deprecated_names:  List[str] = field(default_factory=list)

    def target(self, platform: str | None = None) -> PlatformTarget:
        key = platform or current_platform()
        try:
            return self.platforms[key]
        except KeyError:
            raise ValueError(f"{self.name} has no configuration for platform '{key}'")


def current_platform() -> str:
    """Normalise sys.platform to one of win32 | darwin | linux."""
    if sys.platform.startswith("win"):
        return "win32"
    if sys.platform == "darwin":
        return "darwin"
    return "linux"


# ══════════════════════════════════════════════════════════════════════════
# FFmpeg
# ══════════════════════════════════════════════════════════════════════════

FFMPEG = ToolSpec(
    name="ffmpeg",
    platforms={
        "win32": PlatformTarget(
            candidates=["ffmpeg.exe"],
            sources=[
                "https://github.com/BtbN/FFmpeg-Builds/releases/download/latest/ffmpeg-master-latest-win64-gpl.zip",
                "https://www.gyan.dev/ffmpeg/builds/ffmpeg-release-essentials.zip",
            ],
            executable_names=["ffmpeg.exe"],
        ),
        "darwin": PlatformTarget(
            candidates=["ffmpeg-mac", "ffmpeg"],
            sources=[
                "https://evermeet.cx/ffmpeg/getrelease/zip",
                "https://www.osxexperts.net/ffmpeg71intel.zip",
            ],
            executable_names=["ffmpeg"],
        ),
        "linux": PlatformTarget(
            candidates=["ffmpeg"],
            sources=[
                "https://github.com/BtbN/FFmpeg-Builds/releases/download/latest/ffmpeg-master-latest-linux64-gpl.tar.xz",
                "https://johnvansickle.com/ffmpeg/releases/ffmpeg-release-amd64-static.tar.xz",
            ],
            executable_names=["ffmpeg"],
        ),
    },
    global_names=["ffmpeg"],
)


# ══════════════════════════════════════════════════════════════════════════
# whisper.cpp
# ══════════════════════════════════════════════════════════════════════════

# Source tarballs for platforms without a prebuilt CLI
_WHISPER_SOURCES = [
    "https://github.com/ggml-org/whisper.cpp/archive/refs/tags/v1.8.3.tar.gz",
    "https://github.com/ggerganov/whisper.cpp/archive/refs/tags/v1.7.6.tar.gz",
]
_WHISPER_BUILD_OUTPUTS = [
    "build/bin/whisper-cli",
    "build/bin/main",
    "main",
]

WHISPER = ToolSpec(
    name="whisper.cpp",
    platforms={
        "win32": PlatformTarget(
            candidates=["whisper-cli.exe", "whisper.exe", "main.exe"],
            sources=[
                # v1.5.5 only ships main.exe, which later became a deprecation stub
                "https://github.com/ggml-org/whisper.cpp/releases/download/v1.8.3/whisper-bin-x64.zip",
                "https://github.com/ggerganov/whisper.cpp/releases/download/v1.5.5/whisper-v1.5.5-windows-x64.zip",
            ],
            executable_names=["whisper-cli.exe", "whisper.exe", "main.exe"],
        ),
        "darwin": PlatformTarget(
            candidates=["whisper-cli", "whisper", "main"],
            sources=_WHISPER_SOURCES,
            strategy=InstallStrategy.compile_from_source,
            build_outputs=_WHISPER_BUILD_OUTPUTS,
        ),
        "linux": PlatformTarget(
            candidates=["whisper-cli", "whisper", "main"],
            sources=_WHISPER_SOURCES,
            strategy=InstallStrategy.compile_from_source,
            build_outputs=_WHISPER_BUILD_OUTPUTS,
        ),
    },
    # Plain "whisper" on PATH is usually the Python openai-whisper CLI
    global_names=["whisper-cli", "whisper-cpp"],
    deprecated_names=["main", "main.exe"],
)

TOOLS: Dict[str, ToolSpec] = {spec.name: spec for spec in (FFMPEG, WHISPER)}
