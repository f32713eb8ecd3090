"""
Voxcribe — Self-test Output Classifier
Module : app/speech_pipeline/classifier.py

Decides whether a tool's self-test output means "this binary works here".

The signature sets below are data: adding a new platform error message
means adding a string, not another branch.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from app.speech_pipeline.schemas import ProcessOutput

# Lower-cased fragments emitted by the OS / loader when a binary cannot run
PLATFORM_ERROR_SIGNATURES: tuple[str, ...] = (
    "permission denied",
    "exec format error",
    "cannot execute binary file",
    "cannot execute: required file not found",
    "bad cpu type in executable",
    "wrong elf class",
    "not a valid win32 application",
    "is not a valid application for this os platform",
    "is not recognized as an internal or external command",
    "no such file or directory",
    "error while loading shared libraries",
    "cannot open shared object file",
    "library not loaded",
    "image not found",
    "illegal instruction",
    "0xc000007b",
    "0xc0000135",
    "the specified module could not be found",
    "winerror 193",
    "winerror 216",
    "killed: 9",
    "syntax error: unexpected",
)

# Newer whisper.cpp releases keep main(.exe) only as a stub that prints this
DEPRECATION_SIGNATURES: tuple[str, ...] = (
    "is deprecated",
    "deprecation-warning",
    "please use 'whisper-cli",
    "please use whisper-cli",
)


class Verdict(str, Enum):
    functional = "functional"
    platform_error = "platform_error"
    deprecated_stub = "deprecated_stub"
    silent_failure = "silent_failure"


@dataclass(frozen=True)
class Classification:
    verdict: Verdict
    reason:  Optional[str] = None

    @property
    def functional(self) -> bool:
        return self.verdict is Verdict.functional


def classify(output: ProcessOutput) -> Classification:
    """
    Classify a self-test run.

      platform error signature       → platform_error  (reject, try next)
      deprecation notice             → deprecated_stub (reject, remember)
      any other output, or a clean 0 → functional      (accept)
      failure with nothing printed   → silent_failure  (reject, try next)

    Tools print usage to stderr and often exit non-zero for --help, so the
    exit status alone never rejects a binary that printed something.
    """
    if output.timed_out:
        return Classification(Verdict.silent_failure, "self-test timed out")
    if output.launch_error:
        return Classification(Verdict.platform_error, output.launch_error.strip())

    raw = output.combined
    lowered = raw.lower()

    for signature in PLATFORM_ERROR_SIGNATURES:
        if signature in lowered:
            return Classification(Verdict.platform_error, _first_line_with(raw, signature))

    for signature in DEPRECATION_SIGNATURES:
        if signature in lowered:
            return Classification(Verdict.deprecated_stub, _first_line_with(raw, signature))

    if raw.strip() or output.returncode == 0:
        return Classification(Verdict.functional)
    return Classification(Verdict.silent_failure, f"exited {output.returncode} without output")


def _first_line_with(raw: str, signature: str) -> str:
    for line in raw.splitlines():
        if signature in line.lower():
            return line.strip()[:300]
    return signature
