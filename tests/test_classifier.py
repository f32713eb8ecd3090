"""
Tests for the self-test output classifier.
"""

from __future__ import annotations

import pytest

from app.speech_pipeline.classifier import (
    PLATFORM_ERROR_SIGNATURES,
    Verdict,
    classify,
)
from app.speech_pipeline.schemas import ProcessOutput


class TestClassify:
    def test_usage_text_on_nonzero_exit_is_functional(self) -> None:
        out = ProcessOutput(returncode=1, stderr="usage: whisper-cli [options] file0.wav")
        assert classify(out).verdict is Verdict.functional

    def test_clean_exit_without_output_is_functional(self) -> None:
        assert classify(ProcessOutput(returncode=0)).functional

    def test_silent_failure(self) -> None:
        result = classify(ProcessOutput(returncode=1))
        assert result.verdict is Verdict.silent_failure
        assert "exited 1" in result.reason

    @pytest.mark.parametrize("message", [
        "bash: ./whisper-cli: cannot execute binary file: Exec format error",
        "Bad CPU type in executable",
        "error while loading shared libraries: libstdc++.so.6: cannot open shared object file",
        "This version of %1 is not compatible... not a valid Win32 application",
        "dyld: Library not loaded: @rpath/libwhisper.1.dylib",
    ])
    def test_platform_error_signatures(self, message: str) -> None:
        result = classify(ProcessOutput(returncode=126, stderr=message))
        assert result.verdict is Verdict.platform_error
        assert result.reason

    def test_platform_error_wins_over_exit_zero(self) -> None:
        out = ProcessOutput(returncode=0, stdout="Illegal instruction (core dumped)")
        assert classify(out).verdict is Verdict.platform_error

    def test_deprecation_stub(self) -> None:
        out = ProcessOutput(
            returncode=1,
            stderr="WARNING: The binary 'main' is deprecated.\n Please use 'whisper-cli' instead.",
        )
        result = classify(out)
        assert result.verdict is Verdict.deprecated_stub
        assert "deprecated" in result.reason

    def test_launch_error_is_platform_error(self) -> None:
        out = ProcessOutput(returncode=None, launch_error="[Errno 8] Exec format error")
        assert classify(out).verdict is Verdict.platform_error

    def test_timeout_is_rejected(self) -> None:
        out = ProcessOutput(returncode=-9, stdout="usage: ...", timed_out=True)
        assert not classify(out).functional

    def test_signatures_are_lower_case(self) -> None:
        assert all(sig == sig.lower() for sig in PLATFORM_ERROR_SIGNATURES)


class TestProcessOutput:
    def test_combined_skips_empty_streams(self) -> None:
        out = ProcessOutput(returncode=None, stderr="boom", launch_error="[Errno 2] No such file")
        assert out.combined == "boom\n[Errno 2] No such file"

    def test_success_is_decided_by_classify_only(self) -> None:
        assert not hasattr(ProcessOutput(returncode=0), "ok")
