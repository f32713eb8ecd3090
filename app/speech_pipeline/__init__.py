"""
Voxcribe — Speech Pipeline Module
==================================
Public API surface for app.speech_pipeline.

Exports
-------
run_transcription      — async orchestrator (convert → transcribe → recover → assemble)
save_upload_to_temp    — save UploadFile → uploads dir
remediation_for        — user-facing guidance for a ToolUnavailable
TranscriptionJob       — per-request job (id, input, language, scratch dir)
TranscriptionResult    — output schema consumed by the router
"""

from app.speech_pipeline.pipeline import (
    run_transcription,
    save_upload_to_temp,
    remediation_for,
)
from app.speech_pipeline.schemas import TranscriptionJob, TranscriptionResult

__all__ = [
    "run_transcription",
    "save_upload_to_temp",
    "remediation_for",
    "TranscriptionJob",
    "TranscriptionResult",
]
