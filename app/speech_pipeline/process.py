"""
Voxcribe — External Process Runner
Module : app/speech_pipeline/process.py

Runs FFmpeg / whisper.cpp as independent OS processes awaited on the event
loop, so one request's conversion never blocks another request's task.

Every invocation has a timeout. On expiry the process is killed and reaped
and the ProcessOutput is flagged timed_out; callers map that to their own
failure state.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from app.speech_pipeline.schemas import ProcessOutput


async def run_process(
    cmd: Sequence[str],
    timeout: Optional[float],
    cwd: Optional[Path] = None,
    label: str = "process",
) -> ProcessOutput:
    """
    Execute `cmd` and capture both streams.

    Never raises for process-level problems: a missing or un-launchable
    executable comes back with returncode=None and launch_error set.
    """
    logger.debug(f"[Process] ▶ {label}: {' '.join(str(c) for c in cmd)}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *[str(c) for c in cmd],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=str(cwd) if cwd else None,
        )
    except OSError as exc:
        # ENOENT, EACCES, ENOEXEC, WinError 193 ... the binary cannot run here
        logger.warning(f"[Process] {label} could not start: {exc}")
        return ProcessOutput(returncode=None, launch_error=str(exc))

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"[Process] {label} exceeded {timeout}s — killing pid {proc.pid}")
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        stdout, stderr = await proc.communicate()
        return ProcessOutput(
            returncode=proc.returncode,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            timed_out=True,
        )

    result = ProcessOutput(
        returncode=proc.returncode,
        stdout=_decode(stdout),
        stderr=_decode(stderr),
    )
    if result.returncode != 0:
        logger.debug(f"[Process] {label} exited {result.returncode}")
    return result


def _decode(data: Optional[bytes]) -> str:
    return (data or b"").decode("utf-8", errors="replace")
