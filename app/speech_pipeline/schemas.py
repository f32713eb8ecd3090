"""
Voxcribe — Speech Pipeline Internal Schemas

Lightweight dataclasses used as internal contracts between the pipeline
stages (converter → engine → recovery → assembler).
These are NOT the public API schemas (those live in app/schemas/__init__.py).
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


# ── Job ────────────────────────────────────────────────────────────────────

@dataclass
class TranscriptionJob:
    """
    One transcription request.

    Attributes:
        job_id      : Derived from the request timestamp, e.g.
                      "transcription_1718000000000_3fa2c1d0". Also the stem
                      of every per-job file, so concurrent jobs sharing
                      scratch_dir never collide.
        input_path  : The uploaded file as saved on disk.
        language    : whisper language code ("en", "de", ...).
        scratch_dir : Directory holding <job_id>.wav / <job_id>.json.
    """
    job_id:      str
    input_path:  Path
    language:    str
    scratch_dir: Path

    @classmethod
    def create(cls, input_path: Path, language: str, scratch_dir: Path) -> "TranscriptionJob":
        return cls(
            job_id=new_job_id(),
            input_path=Path(input_path),
            language=language,
            scratch_dir=Path(scratch_dir).resolve(),
        )

    @property
    def output_base(self) -> Path:
        """Value passed to whisper.cpp's -of flag (no extension)."""
        return self.scratch_dir / self.job_id

    @property
    def wav_path(self) -> Path:
        return self.scratch_dir / f"{self.job_id}.wav"

    @property
    def json_path(self) -> Path:
        return self.scratch_dir / f"{self.job_id}.json"

    @property
    def alt_json_path(self) -> Path:
        """Older whisper.cpp builds ignore -of and append .json to the input."""
        return self.scratch_dir / f"{self.job_id}.wav.json"


def new_job_id() -> str:
    return f"transcription_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


# ── Process output ─────────────────────────────────────────────────────────

@dataclass
class ProcessOutput:
    """
    Captured result of one external process.

    Attributes:
        returncode   : Exit status; None when the process never started.
        stdout       : Decoded standard output.
        stderr       : Decoded standard error.
        timed_out    : True when the process was killed for exceeding its timeout.
        launch_error : OS error text when the executable could not be started.
    """
    returncode:   Optional[int]
    stdout:       str = ""
    stderr:       str = ""
    timed_out:    bool = False
    launch_error: Optional[str] = None

    @property
    def combined(self) -> str:
        parts = [self.stdout, self.stderr, self.launch_error or ""]
        return "\n".join(p for p in parts if p)


# ── Output recovery ────────────────────────────────────────────────────────

class RecoveryStrategy(str, Enum):
    structured_file = "structured_file"
    alternate_file = "alternate_file"
    embedded_payload = "embedded_payload"
    plain_text = "plain_text"
    none = "none"


@dataclass(frozen=True)
class RecoveredOutput:
    """
    Tagged result of OutputRecovery. `path` points at the structured-output
    artifact the assembler should read; None when nothing was recovered.
    """
    strategy: RecoveryStrategy
    path:     Optional[Path] = None

    @property
    def recovered(self) -> bool:
        return self.strategy is not RecoveryStrategy.none and self.path is not None


# ── Result ─────────────────────────────────────────────────────────────────

@dataclass
class TranscriptSegment:
    start_ms: int
    end_ms:   int
    text:     str


@dataclass
class TranscriptionResult:
    """
    Exactly one per job. `text` is always a string, possibly empty.

    Attributes:
        text     : Segment texts joined with single spaces.
        segments : Ordered segments in milliseconds.
        duration : Seconds, derived from the last segment end.
        strategy : Which recovery path produced the artifact.
    """
    text:     str = ""
    segments: List[TranscriptSegment] = field(default_factory=list)
    duration: float = 0.0
    strategy: RecoveryStrategy = RecoveryStrategy.none

    @classmethod
    def empty(cls) -> "TranscriptionResult":
        """The canonical degraded result: {text: "", segments: [], duration: 0}."""
        return cls()
