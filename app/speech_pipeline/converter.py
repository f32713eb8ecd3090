"""
Voxcribe — Conversion Stage
Module : app/speech_pipeline/converter.py

Normalises any uploaded audio to what whisper.cpp requires:
16 kHz, mono, 16-bit PCM WAV. These parameters are fixed by the engine and
intentionally not configurable.

Failures here never raise. An upload FFmpeg cannot decode is most likely an
unsupported or corrupt file, so the request degrades to an empty transcript
instead of an error response. Two cases are told apart for logging:

  non_functional    : FFmpeg exists but cannot execute on this platform
                      (failed its -version self-test)
  conversion_failed : FFmpeg runs but rejected this input
"""

from __future__ import annotations

import wave
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from loguru import logger

from app.config import Settings, get_settings
from app.speech_pipeline.classifier import Classification, classify
from app.speech_pipeline.process import run_process
from app.speech_pipeline.schemas import TranscriptionJob

SAMPLE_RATE = 16000
CHANNELS = 1
CODEC = "pcm_s16le"


class ConversionFailure(str, Enum):
    non_functional = "non_functional"
    conversion_failed = "conversion_failed"


@dataclass(frozen=True)
class ConversionOutcome:
    wav_path: Optional[Path] = None
    failure:  Optional[ConversionFailure] = None
    reason:   Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.wav_path is not None


def build_conversion_command(ffmpeg: Path, source: Path, output: Path) -> list[str]:
    return [
        str(ffmpeg),
        "-hide_banner",
        "-nostdin",
        "-y",
        "-i", str(source),
        "-vn",
        "-ar", str(SAMPLE_RATE),
        "-ac", str(CHANNELS),
        "-c:a", CODEC,
        str(output),
    ]


async def self_test(ffmpeg: Path, settings: Optional[Settings] = None) -> Classification:
    settings = settings or get_settings()
    output = await run_process(
        [str(ffmpeg), "-hide_banner", "-version"],
        timeout=settings.selftest_timeout_seconds,
        label="FFmpeg self-test",
    )
    return classify(output)


async def convert_audio(
    job: TranscriptionJob,
    ffmpeg: Path,
    settings: Optional[Settings] = None,
) -> ConversionOutcome:
    """
    Convert job.input_path to job.wav_path.

    Returns
    -------
    ConversionOutcome
        ok=True with wav_path set, or a failure kind with a reason.
    """
    settings = settings or get_settings()

    verdict = await self_test(ffmpeg, settings)
    if not verdict.functional:
        logger.warning(
            f"[Converter] [{job.job_id}] FFmpeg at {ffmpeg} failed its self-test "
            f"({verdict.verdict.value}: {verdict.reason}) — degrading to empty transcript"
        )
        return ConversionOutcome(failure=ConversionFailure.non_functional, reason=verdict.reason)

    job.scratch_dir.mkdir(parents=True, exist_ok=True)
    logger.info(f"[Converter] [{job.job_id}] {job.input_path.name} → {job.wav_path.name}")

    output = await run_process(
        build_conversion_command(ffmpeg, job.input_path, job.wav_path),
        timeout=settings.conversion_timeout_seconds,
        label="FFmpeg conversion",
    )

    if output.timed_out:
        reason = f"timed out after {settings.conversion_timeout_seconds}s"
    elif output.launch_error:
        reason = output.launch_error
    elif output.returncode != 0:
        reason = _tail(output.stderr) or f"exit status {output.returncode}"
    elif not job.wav_path.is_file():
        reason = "FFmpeg reported success but wrote no output"
    else:
        logger.debug(f"[Converter] [{job.job_id}] WAV ready ({job.wav_path.stat().st_size} bytes)")
        return ConversionOutcome(wav_path=job.wav_path)

    logger.warning(f"[Converter] [{job.job_id}] Conversion failed: {reason}")
    return ConversionOutcome(failure=ConversionFailure.conversion_failed, reason=reason)


def wav_duration_ms(path: Path) -> Optional[int]:
    """Length of a PCM WAV in milliseconds, None if the header is unreadable."""
    try:
        with wave.open(str(path), "rb") as wf:
            rate = wf.getframerate()
            if not rate:
                return None
            return int(wf.getnframes() * 1000 / rate)
    except (OSError, EOFError, wave.Error) as exc:
        logger.debug(f"[Converter] Could not read WAV header of {path.name}: {exc}")
        return None


def _tail(text: str, lines: int = 3) -> str:
    kept = [line.strip() for line in text.strip().splitlines() if line.strip()]
    return " | ".join(kept[-lines:])
