"""
Voxcribe — Output Recovery
Module : app/speech_pipeline/recovery.py

whisper.cpp's CLI output contract has changed between releases: where the
-oj file lands, whether -of is honoured, what goes to the terminal. Users may
have any of those builds installed, so recovery is deliberately permissive.
Strategies, in order, until one yields an artifact:

  1. structured_file  : <scratch>/<job_id>.json           (current builds)
  2. alternate_file   : <scratch>/<job_id>.wav.json       (older builds)
  3. embedded_payload : a whisper result object printed to the terminal,
                        persisted as <job_id>.json
  4. plain_text       : timestamped transcript lines in the captured output,
                        cleaned and wrapped in a one-segment record
  5. none             : nothing usable

Everything except recover_output() is a pure function of the captured text,
so running recovery twice on the same output gives the same transcript.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Optional

from loguru import logger

from app.speech_pipeline.schemas import (
    ProcessOutput,
    RecoveredOutput,
    RecoveryStrategy,
    TranscriptionJob,
)

# [00:00:00.000 --> 00:00:02.500]
TIMESTAMP_BRACKET = re.compile(
    r"\[\s*(\d{1,2}):(\d{2}):(\d{2})[.,](\d{3})\s*-->\s*(\d{1,2}):(\d{2}):(\d{2})[.,](\d{3})\s*\]"
)

# Log lines whisper.cpp / ggml write around the transcript
DIAGNOSTIC_PREFIXES: tuple[str, ...] = (
    "whisper_",
    "ggml_",
    "gguf_",
    "load_backend",
    "system_info",
    "main:",
    "output_",
    "log_mel",
    "sampling",
    "encode time",
    "decode time",
    "batchd time",
    "prompt time",
    "total time",
    "fallbacks",
    "warning:",
    "usage:",
)

_WHITESPACE = re.compile(r"\s+")


# ══════════════════════════════════════════════════════════════════════════
# Pure extraction helpers
# ══════════════════════════════════════════════════════════════════════════

def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def extract_embedded_payload(raw: str) -> Optional[str]:
    """
    Return the first brace-delimited block in `raw` that decodes to a whisper
    result object (a dict with a "transcription" list), or None.

    Other brace blocks (config dumps, braces inside the spoken text) are
    skipped so plain-text recovery still gets its turn.
    """
    decoder = json.JSONDecoder()
    position = raw.find("{")
    while position != -1:
        try:
            obj, end = decoder.raw_decode(raw, position)
        except ValueError:
            position = raw.find("{", position + 1)
            continue
        if isinstance(obj, dict) and isinstance(obj.get("transcription"), list):
            return raw[position:end]
        position = raw.find("{", position + 1)
    return None


def is_diagnostic_line(line: str) -> bool:
    lowered = line.strip().lower()
    return lowered.startswith(DIAGNOSTIC_PREFIXES)


def extract_plain_text(raw: str) -> Optional[str]:
    """
    Transcript text from timestamped terminal lines.

    Returns None when `raw` has no timestamped lines at all; an empty string
    when it has some but they carry no words (silence).
    """
    kept: list[str] = []
    for line in raw.splitlines():
        stripped = line.strip()
        if not stripped or is_diagnostic_line(stripped):
            continue
        if not TIMESTAMP_BRACKET.search(stripped):
            continue
        kept.append(TIMESTAMP_BRACKET.sub(" ", stripped))
    if not kept:
        return None
    return collapse_whitespace(" ".join(kept))


def last_timestamp_ms(raw: str) -> int:
    """End of the latest timestamp bracket in `raw`, in milliseconds (0 if none)."""
    latest = 0
    for match in TIMESTAMP_BRACKET.finditer(raw):
        h, m, s, ms = (int(g) for g in match.groups()[4:])
        latest = max(latest, ((h * 60 + m) * 60 + s) * 1000 + ms)
    return latest


def format_timestamp(ms: int) -> str:
    """whisper.cpp's JSON timestamp format: 00:00:01,500"""
    seconds, millis = divmod(max(ms, 0), 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d},{millis:03d}"


def synthesize_record(text: str, duration_ms: int) -> dict:
    """Minimal whisper-shaped record: one pseudo-segment spanning the whole audio."""
    return {
        "transcription": [
            {
                "timestamps": {"from": format_timestamp(0), "to": format_timestamp(duration_ms)},
                "offsets": {"from": 0, "to": duration_ms},
                "text": text,
            }
        ]
    }


# ══════════════════════════════════════════════════════════════════════════
# Recovery driver
# ══════════════════════════════════════════════════════════════════════════

def recover_output(
    job: TranscriptionJob,
    captured: ProcessOutput,
    audio_duration_ms: Optional[int] = None,
) -> RecoveredOutput:
    """
    Find or reconstruct the structured-output artifact for `job`.

    Parameters
    ----------
    captured : ProcessOutput
        What whisper.cpp printed, kept even when it exited non-zero.
    audio_duration_ms : Optional[int]
        Length of the converted WAV, used for the plain-text pseudo-segment.
        Falls back to the latest timestamp seen in the output.
    """
    for strategy, path in (
        (RecoveryStrategy.structured_file, job.json_path),
        (RecoveryStrategy.alternate_file, job.alt_json_path),
    ):
        if path.is_file() and path.stat().st_size > 0:
            logger.debug(f"[Recovery] [{job.job_id}] {strategy.value}: {path.name}")
            return RecoveredOutput(strategy=strategy, path=path)

    raw = captured.combined

    payload = extract_embedded_payload(raw)
    if payload is not None:
        _persist(job.json_path, payload)
        logger.info(
            f"[Recovery] [{job.job_id}] No output file; recovered embedded JSON "
            f"({len(payload)} chars) from terminal output"
        )
        return RecoveredOutput(strategy=RecoveryStrategy.embedded_payload, path=job.json_path)

    text = extract_plain_text(raw)
    if text is not None:
        duration_ms = audio_duration_ms or last_timestamp_ms(raw)
        record = synthesize_record(text, duration_ms)
        _persist(job.json_path, json.dumps(record, ensure_ascii=False))
        logger.info(
            f"[Recovery] [{job.job_id}] No structured output; rebuilt transcript "
            f"from timestamped lines ({len(text)} chars)"
        )
        return RecoveredOutput(strategy=RecoveryStrategy.plain_text, path=job.json_path)

    logger.warning(f"[Recovery] [{job.job_id}] Nothing recoverable in engine output")
    return RecoveredOutput(strategy=RecoveryStrategy.none)


def _persist(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
