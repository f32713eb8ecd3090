"""
Voxcribe — Pydantic Schemas

Defines the request / response data contracts used by the API.
"""

from __future__ import annotations

from typing import Optional
from pydantic import BaseModel, Field

from app.speech_pipeline.schemas import TranscriptionResult


# ── Transcription ─────────────────────────────────────────────────────────

class TranscriptSegmentOut(BaseModel):
    start_ms: int
    end_ms: int
    text: str


class TranscriptionResponse(BaseModel):
    """Also the shape of a degraded result: {text: "", segments: [], duration: 0}."""
    text: str = ""
    segments: list[TranscriptSegmentOut] = Field(default_factory=list)
    duration: float = Field(default=0.0, ge=0.0, description="Seconds")

    @classmethod
    def from_result(cls, result: TranscriptionResult) -> "TranscriptionResponse":
        return cls(
            text=result.text,
            segments=[
                TranscriptSegmentOut(start_ms=s.start_ms, end_ms=s.end_ms, text=s.text)
                for s in result.segments
            ],
            duration=result.duration,
        )


# ── Errors ────────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    error: str
    remediation: Optional[str] = None


# ── Health ────────────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    platform: str
    ffmpeg_ready: bool
    ffmpeg_path: str
    whisper_ready: bool
    whisper_path: str
    model_ready: bool
