"""
Tests for the whisper.cpp engine adapter: discovery order, rejection kinds,
execution and recovery hand-off.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from app.exceptions import ToolKind, ToolUnavailable
from app.speech_pipeline.engine import EngineState, TranscriptionEngineAdapter
from app.speech_pipeline.schemas import ProcessOutput, RecoveryStrategy, TranscriptionJob
from app.tools import ProvisionedTool, ToolOrigin

# Candidate names below are the POSIX ones
pytestmark = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX candidate names")

USAGE = ProcessOutput(returncode=0, stderr="usage: whisper-cli [options] file0.wav")
EXEC_FORMAT = ProcessOutput(returncode=126, stderr="cannot execute binary file: Exec format error")
DEPRECATED = ProcessOutput(returncode=1, stderr="WARNING: The binary 'main' is deprecated.")
SILENT = ProcessOutput(returncode=1)


def _touch(settings, *names: str) -> list[Path]:
    bin_dir = Path(settings.bin_dir).resolve()
    bin_dir.mkdir(parents=True, exist_ok=True)
    paths = []
    for name in names:
        path = bin_dir / name
        path.write_text("#!/bin/sh\n")
        path.chmod(0o755)
        paths.append(path)
    return paths


@pytest.fixture
def probes(monkeypatch):
    """Replace run_process with canned outputs keyed by executable name."""
    calls: list[str] = []
    outputs: dict[str, ProcessOutput] = {}

    async def fake_run_process(cmd, timeout, cwd=None, label="process"):
        name = Path(cmd[0]).name
        calls.append(name)
        return outputs.get(name, SILENT)

    monkeypatch.setattr("app.speech_pipeline.engine.run_process", fake_run_process)
    return calls, outputs


class TestDiscover:
    def test_first_functional_candidate_in_order(self, settings, probes) -> None:
        calls, outputs = probes
        _, _, main = _touch(settings, "whisper-cli", "whisper", "main")
        outputs.update({"whisper-cli": EXEC_FORMAT, "whisper": EXEC_FORMAT, "main": USAGE})

        found = asyncio.run(TranscriptionEngineAdapter(settings).discover())
        assert found == main
        assert calls == ["whisper-cli", "whisper", "main"]

    def test_stops_at_first_accepted(self, settings, probes) -> None:
        calls, outputs = probes
        cli, _ = _touch(settings, "whisper-cli", "main")
        outputs["whisper-cli"] = USAGE

        assert asyncio.run(TranscriptionEngineAdapter(settings).discover()) == cli
        assert calls == ["whisper-cli"]

    def test_only_deprecated_stub(self, settings, probes) -> None:
        _, outputs = probes
        _touch(settings, "whisper-cli", "main")
        outputs.update({"whisper-cli": EXEC_FORMAT, "main": DEPRECATED})

        adapter = TranscriptionEngineAdapter(settings)
        with pytest.raises(ToolUnavailable) as excinfo:
            asyncio.run(adapter.discover())
        assert excinfo.value.kind is ToolKind.deprecated_stub
        assert adapter.state is EngineState.done_failed

    def test_silent_main_counts_as_stub(self, settings, probes) -> None:
        _touch(settings, "main")
        with pytest.raises(ToolUnavailable) as excinfo:
            asyncio.run(TranscriptionEngineAdapter(settings).discover())
        assert excinfo.value.kind is ToolKind.deprecated_stub

    def test_nothing_usable(self, settings, probes) -> None:
        _, outputs = probes
        _touch(settings, "whisper-cli", "whisper")
        outputs.update({"whisper-cli": EXEC_FORMAT, "whisper": SILENT})

        with pytest.raises(ToolUnavailable) as excinfo:
            asyncio.run(TranscriptionEngineAdapter(settings).discover())
        assert excinfo.value.kind is ToolKind.non_functional
        assert "whisper-cli" in excinfo.value.reason

    def test_nothing_present_without_provisioning(self, settings, probes) -> None:
        with pytest.raises(ToolUnavailable) as excinfo:
            asyncio.run(TranscriptionEngineAdapter(settings).discover())
        assert excinfo.value.kind is ToolKind.missing
        assert probes[0] == []

    def test_provisions_when_nothing_present(self, settings, probes) -> None:
        _, outputs = probes
        outputs["whisper-cli"] = USAGE
        settings.auto_provision = True

        class InstallingProvisioner:
            def provision(self, spec):
                (path,) = _touch(settings, "whisper-cli")
                return ProvisionedTool(path=path, origin=ToolOrigin.just_installed)

        adapter = TranscriptionEngineAdapter(settings, InstallingProvisioner())
        found = asyncio.run(adapter.discover())
        assert found.name == "whisper-cli"


class TestRun:
    @pytest.fixture
    def job(self, settings) -> TranscriptionJob:
        return TranscriptionJob.create(Path("upload.mp3"), "fr", settings.temp_dir)

    def test_command(self, settings, job) -> None:
        settings.whisper_threads = 4
        cmd = TranscriptionEngineAdapter(settings).build_command(
            Path("/opt/whisper-cli"), job, Path("/models/ggml-small.bin")
        )
        assert cmd[0] == "/opt/whisper-cli"
        assert cmd[cmd.index("-l") + 1] == "fr"
        assert cmd[cmd.index("-f") + 1] == str(job.wav_path)
        assert cmd[cmd.index("-of") + 1] == str(job.output_base)
        assert "-oj" in cmd
        assert cmd[-2:] == ["-t", "4"]

    def test_non_zero_exit_still_recovers(self, settings, probes, job) -> None:
        _, outputs = probes
        outputs["whisper-cli"] = ProcessOutput(
            returncode=139,
            stdout="[00:00:00.000 --> 00:00:01.000]   Bonjour",
        )
        adapter = TranscriptionEngineAdapter(settings)
        recovered = asyncio.run(adapter.run(Path("whisper-cli"), job, Path("m.bin"), 1000))

        assert recovered.strategy is RecoveryStrategy.plain_text
        assert adapter.state is EngineState.output_recovery
        assert adapter.finish("Bonjour", job.job_id) is EngineState.done_success

    def test_timeout_fails(self, settings, probes, job) -> None:
        _, outputs = probes
        outputs["whisper-cli"] = ProcessOutput(
            returncode=-9,
            stdout="[00:00:00.000 --> 00:00:01.000]   partial",
            timed_out=True,
        )
        adapter = TranscriptionEngineAdapter(settings)
        recovered = asyncio.run(adapter.run(Path("whisper-cli"), job, Path("m.bin")))

        assert recovered.strategy is RecoveryStrategy.none
        assert adapter.finish("", job.job_id) is EngineState.done_failed

    def test_empty_transcript_state(self, settings, probes, job) -> None:
        _, outputs = probes
        outputs["whisper-cli"] = ProcessOutput(returncode=0, stdout="[00:00:00.000 --> 00:00:02.000]  ")
        adapter = TranscriptionEngineAdapter(settings)
        asyncio.run(adapter.run(Path("whisper-cli"), job, Path("m.bin"), 2000))
        assert adapter.finish("", job.job_id) is EngineState.done_empty
