"""
Voxcribe — Speech Pipeline Orchestrator
Module : app/speech_pipeline/pipeline.py

Entry point for one transcription request:

  Stage 1 — Conversion      (FFmpeg → 16 kHz mono PCM WAV)
  Stage 2 — Transcription   (whisper.cpp discovery + execution)
  Stage 3 — Recovery        (structured file → embedded JSON → plain text)
  Stage 4 — Assembly        (canonical TranscriptionResult)

Both tools are located, and provisioned when missing, right before the stage
that needs them. PATH lookups and provisioning are blocking I/O and run in a
worker thread so the event loop keeps serving other requests.

Outcomes
--------
• success / degraded : a TranscriptionResult (possibly empty) — HTTP 200
• ToolUnavailable    : raised; the router answers 503 with remediation_for()

Per-job files are removed in a finally block on every path.

Usage
-----
from app.speech_pipeline.pipeline import run_transcription

result = await run_transcription(job)
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from loguru import logger

from app.config import Settings, get_settings
from app.exceptions import ProvisionFailed, ToolKind, ToolUnavailable
from app.speech_pipeline.assembler import assemble, cleanup_job
from app.speech_pipeline.converter import convert_audio, wav_duration_ms
from app.speech_pipeline.engine import TranscriptionEngineAdapter
from app.speech_pipeline.schemas import TranscriptionJob, TranscriptionResult
from app.tools.locator import locate
from app.tools.provisioner import ToolProvisioner
from app.tools.specs import FFMPEG, WHISPER, ToolSpec, current_platform

MODEL_TOOL_NAME = "whisper model"


# ══════════════════════════════════════════════════════════════════════════════
# Tool resolution
# ══════════════════════════════════════════════════════════════════════════════

async def resolve_tool(
    spec: ToolSpec,
    settings: Settings,
    provisioner: ToolProvisioner,
) -> Path:
    """Locate `spec`, provisioning it when nothing resolves. Raises ToolUnavailable."""
    location = await asyncio.to_thread(locate, spec, settings)
    if location.found:
        return location.path

    if not settings.auto_provision:
        raise ToolUnavailable(spec.name, ToolKind.missing, "auto-provisioning disabled")

    logger.info(f"[Pipeline] {spec.name} not found — provisioning")
    try:
        installed = await asyncio.to_thread(provisioner.provision, spec)
    except ProvisionFailed as exc:
        raise ToolUnavailable(spec.name, ToolKind.missing, str(exc)) from exc
    return installed.path


async def ensure_model(settings: Settings, provisioner: ToolProvisioner) -> Path:
    model_path = Path(settings.model_path).resolve()
    if model_path.is_file() and model_path.stat().st_size >= settings.min_model_bytes:
        return model_path

    if not settings.auto_provision:
        raise ToolUnavailable(MODEL_TOOL_NAME, ToolKind.missing, f"{model_path} not found")

    try:
        return await asyncio.to_thread(provisioner.provision_model)
    except ProvisionFailed as exc:
        raise ToolUnavailable(MODEL_TOOL_NAME, ToolKind.missing, str(exc)) from exc


def remediation_for(error: ToolUnavailable, settings: Optional[Settings] = None) -> str:
    """User-facing guidance for a tool that could not be made available."""
    settings = settings or get_settings()
    bin_dir = Path(settings.bin_dir).resolve()

    if error.tool == FFMPEG.name:
        return (
            f"FFmpeg could not be found or installed automatically. Install it "
            f"(macOS: 'brew install ffmpeg', Linux: 'sudo apt install ffmpeg', "
            f"Windows: download a build from https://www.gyan.dev/ffmpeg/builds/) "
            f"or place the executable in {bin_dir}."
        )

    if error.tool == MODEL_TOOL_NAME:
        return (
            f"The whisper model ggml-{settings.whisper_model}.bin is missing. Download it from "
            f"https://huggingface.co/ggerganov/whisper.cpp and save it to "
            f"{Path(settings.model_path).resolve()}."
        )

    if error.kind is ToolKind.deprecated_stub:
        return (
            f"Only a deprecated whisper.cpp 'main' stub was found in {bin_dir}. Download "
            f"whisper-cli from https://github.com/ggml-org/whisper.cpp/releases and place "
            f"it in {bin_dir}."
        )
    if error.kind is ToolKind.non_functional:
        return (
            f"The whisper.cpp binaries in {bin_dir} cannot run on this machine "
            f"({current_platform()}). Replace them with a build for this platform, or "
            f"delete them so the server can build whisper-cli from source."
        )
    return (
        f"whisper.cpp is not installed. Place whisper-cli in {bin_dir} (prebuilt Windows "
        f"binaries: https://github.com/ggml-org/whisper.cpp/releases; other platforms: "
        f"build from https://github.com/ggml-org/whisper.cpp) or run download_tools.py."
    )


# ══════════════════════════════════════════════════════════════════════════════
# Main orchestrator
# ══════════════════════════════════════════════════════════════════════════════

async def run_transcription(
    job: TranscriptionJob,
    settings: Optional[Settings] = None,
    provisioner: Optional[ToolProvisioner] = None,
) -> TranscriptionResult:
    """
    Transcribe one uploaded file.

    Returns
    -------
    TranscriptionResult
        Always exactly one; empty when conversion failed or no output could
        be recovered.

    Raises
    ------
    ToolUnavailable : FFmpeg, whisper.cpp or the model could not be made
                      available.
    """
    settings = settings or get_settings()
    provisioner = provisioner or ToolProvisioner(settings)

    logger.info(
        f"[Pipeline] ▶ [{job.job_id}] file='{job.input_path.name}' | lang={job.language}"
    )
    try:
        # ── Stage 1: Conversion ───────────────────────────────────────────
        ffmpeg = await resolve_tool(FFMPEG, settings, provisioner)
        conversion = await convert_audio(job, ffmpeg, settings)
        if not conversion.ok:
            return TranscriptionResult.empty()

        # ── Stage 2: Transcription ────────────────────────────────────────
        engine = TranscriptionEngineAdapter(settings, provisioner, WHISPER)
        binary = await engine.discover()
        model_path = await ensure_model(settings, provisioner)

        # ── Stage 3: Recovery ─────────────────────────────────────────────
        recovered = await engine.run(binary, job, model_path, wav_duration_ms(job.wav_path))

        # ── Stage 4: Assembly ─────────────────────────────────────────────
        result = assemble(recovered, job)
        state = engine.finish(result.text, job.job_id)

        logger.info(
            f"[Pipeline] ✅ [{job.job_id}] {state.value} | {len(result.segments)} segments "
            f"| {result.duration:.1f}s | via {result.strategy.value}"
        )
        return result

    except ToolUnavailable as exc:
        logger.error(f"[Pipeline] [{job.job_id}] Tool unavailable: {exc}")
        raise
    except Exception:
        logger.exception(f"[Pipeline] [{job.job_id}] Unexpected failure — empty transcript")
        return TranscriptionResult.empty()
    finally:
        cleanup_job(job)


# ══════════════════════════════════════════════════════════════════════════════
# Upload helpers (used by the router to save UploadFile → disk)
# ══════════════════════════════════════════════════════════════════════════════

def _safe_filename(name: str) -> str:
    base = Path(name or "audio").name
    cleaned = "".join(c if c.isalnum() or c in "._-" else "_" for c in base)
    return cleaned.strip("._") or "audio"


async def save_upload_to_temp(upload_file, job_id: str, uploads_dir: Path) -> Path:
    """
    Save a FastAPI UploadFile as <uploads_dir>/<job_id>-<filename>.

    Caller is responsible for cleanup (the job's cleanup removes it).
    """
    uploads_dir = Path(uploads_dir).resolve()
    uploads_dir.mkdir(parents=True, exist_ok=True)
    dest = uploads_dir / f"{job_id}-{_safe_filename(upload_file.filename)}"

    content = await upload_file.read()
    dest.write_bytes(content)

    logger.debug(f"[Pipeline] Saved upload → {dest} ({len(content)} bytes)")
    return dest

