"""
Voxcribe — Result Assembler
Module : app/speech_pipeline/assembler.py

Turns whichever artifact OutputRecovery produced into the canonical
TranscriptionResult, and owns per-job file cleanup.

Expected artifact shape (whisper.cpp -oj)
-----------------------------------------
{
  "transcription": [
    {"timestamps": {"from": "00:00:00,000", "to": "00:00:01,200"},
     "offsets":    {"from": 0, "to": 1200},
     "text": " Hello"},
    ...
  ]
}

A missing or unparsable artifact degrades to TranscriptionResult.empty(),
the same policy the converter follows.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, List

from loguru import logger

from app.speech_pipeline.recovery import collapse_whitespace
from app.speech_pipeline.schemas import (
    RecoveredOutput,
    TranscriptionJob,
    TranscriptionResult,
    TranscriptSegment,
)

_TIMESTAMP = re.compile(r"^\s*(\d{1,2}):(\d{2}):(\d{2})[.,](\d{1,3})\s*$")


def assemble(recovered: RecoveredOutput, job: TranscriptionJob) -> TranscriptionResult:
    if not recovered.recovered:
        logger.warning(f"[Assembler] [{job.job_id}] No artifact to assemble — empty transcript")
        return TranscriptionResult.empty()

    try:
        data = json.loads(Path(recovered.path).read_text(encoding="utf-8"))
        segments = parse_segments(data)
    except (OSError, ValueError, TypeError) as exc:
        logger.warning(
            f"[Assembler] [{job.job_id}] Could not parse {recovered.path.name} "
            f"({recovered.strategy.value}): {exc} — empty transcript"
        )
        return TranscriptionResult.empty()

    text = collapse_whitespace(" ".join(seg.text for seg in segments))
    duration = max((seg.end_ms for seg in segments), default=0) / 1000.0

    logger.info(
        f"[Assembler] [{job.job_id}] {len(segments)} segments | {duration:.1f}s "
        f"| {len(text)} chars | via {recovered.strategy.value}"
    )
    return TranscriptionResult(
        text=text,
        segments=segments,
        duration=duration,
        strategy=recovered.strategy,
    )


def parse_segments(data: Any) -> List[TranscriptSegment]:
    """
    Raises
    ------
    ValueError : `data` is not a whisper result object.
    """
    if not isinstance(data, dict) or not isinstance(data.get("transcription"), list):
        raise ValueError("missing 'transcription' list")

    segments: List[TranscriptSegment] = []
    for item in data["transcription"]:
        if not isinstance(item, dict):
            raise ValueError(f"segment is {type(item).__name__}, expected object")
        start_ms, end_ms = _segment_bounds(item)
        segments.append(TranscriptSegment(
            start_ms=start_ms,
            end_ms=end_ms,
            text=collapse_whitespace(str(item.get("text") or "")),
        ))
    return segments


def _segment_bounds(item: dict) -> tuple[int, int]:
    offsets = item.get("offsets")
    if isinstance(offsets, dict) and "from" in offsets and "to" in offsets:
        return int(offsets["from"]), int(offsets["to"])

    timestamps = item.get("timestamps")
    if isinstance(timestamps, dict):
        return _parse_timestamp(timestamps.get("from")), _parse_timestamp(timestamps.get("to"))
    return 0, 0


def _parse_timestamp(value: Any) -> int:
    match = _TIMESTAMP.match(str(value or ""))
    if not match:
        return 0
    h, m, s, frac = match.groups()
    return ((int(h) * 60 + int(m)) * 60 + int(s)) * 1000 + int(frac.ljust(3, "0"))


# ══════════════════════════════════════════════════════════════════════════
# Cleanup
# ══════════════════════════════════════════════════════════════════════════

def delete_temp_file(path: Path) -> None:
    """Safely remove a temporary file. Errors are logged, never raised."""
    try:
        path.unlink(missing_ok=True)
        logger.debug(f"[Assembler] Deleted temp file: {path}")
    except Exception as exc:
        logger.warning(f"[Assembler] Could not delete temp file {path}: {exc}")


def cleanup_job(job: TranscriptionJob) -> None:
    """Best-effort removal of every per-job file, on every exit path."""
    for path in (job.input_path, job.wav_path, job.json_path, job.alt_json_path):
        delete_temp_file(path)
