"""
Voxcribe — Tool Pre-installer
==============================
Run this ONCE before starting the server to install the native tools and the
whisper model into the project directories. Requests then skip on-demand
provisioning entirely.

Usage:
    python download_tools.py

Installs:
    1. FFmpeg               → bin/   (prebuilt archive)
    2. whisper.cpp          → bin/   (prebuilt on Windows, built from source elsewhere)
    3. ggml-<model>.bin     → models/ (~466 MB for "small")

Exit status is non-zero when anything could not be installed.
"""

from __future__ import annotations

import sys
from pathlib import Path
from loguru import logger

# ── project root → add to path ────────────────────────────────────────────────
ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(ROOT))

from app.config import get_settings
from app.exceptions import ProvisionFailed
from app.tools import TOOLS, ToolProvisioner

settings = get_settings()


def install_tool(provisioner: ToolProvisioner, step: str, spec) -> bool:
    logger.info(f"[{step}] {spec.name} ...")
    try:
        tool = provisioner.provision(spec)
    except ProvisionFailed as e:
        logger.error(f"    ✗  {spec.name} failed: {e}")
        return False
    logger.success(f"    ✅ {spec.name} ready → {tool.path} ({tool.origin.value})")
    return True


def install_model(provisioner: ToolProvisioner, step: str) -> bool:
    logger.info(f"[{step}] whisper model ggml-{settings.whisper_model}.bin ...")
    try:
        path = provisioner.provision_model()
    except ProvisionFailed as e:
        logger.error(f"    ✗  model download failed: {e}")
        return False
    logger.success(f"    ✅ model ready → {path}")
    return True


def main() -> int:
    logger.info("=" * 60)
    logger.info("Voxcribe — Installing FFmpeg, whisper.cpp and the model")
    logger.info("=" * 60)

    provisioner = ToolProvisioner(settings)
    total = len(TOOLS) + 1
    results = [
        install_tool(provisioner, f"{i}/{total}", spec)
        for i, spec in enumerate(TOOLS.values(), start=1)
    ]
    results.append(install_model(provisioner, f"{total}/{total}"))

    if all(results):
        logger.success("\n🎉 All tools installed. You can now start the server:")
        logger.success("   uvicorn app.main:app --host 0.0.0.0 --port 5000")
        return 0

    logger.error("\n❌ Some tools could not be installed; see the messages above.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
