"""
Voxcribe — Transcription Engine Adapter
Module : app/speech_pipeline/engine.py

Drives whisper.cpp through a small state machine:

  ToolDiscovery → Execution → OutputRecovery → Done(success | empty | failed)

ToolDiscovery
    Candidates (bin_dir variants first, then PATH) are self-tested in
    priority order; the first one that is not a platform error, not a
    deprecation stub and not silent is used. Nothing on disk at all triggers
    provisioning. Nothing usable raises ToolUnavailable, telling "only a
    deprecated stub" apart from "nothing usable".

Execution
    A non-zero exit is not fatal. Some builds print complete or partial
    results to the terminal and then exit abnormally, so the captured output
    is always handed to OutputRecovery. A timeout kills the process and ends
    in Done(failed).
"""

from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path
from typing import List, Optional

from loguru import logger

from app.config import Settings, get_settings
from app.exceptions import ProvisionFailed, ToolKind, ToolUnavailable
from app.speech_pipeline.classifier import Classification, Verdict, classify
from app.speech_pipeline.process import run_process
from app.speech_pipeline.recovery import recover_output
from app.speech_pipeline.schemas import (
    ProcessOutput,
    RecoveredOutput,
    RecoveryStrategy,
    TranscriptionJob,
)
from app.tools.locator import candidate_paths
from app.tools.provisioner import ToolProvisioner
from app.tools.specs import WHISPER, ToolSpec


class EngineState(str, Enum):
    tool_discovery = "ToolDiscovery"
    execution = "Execution"
    output_recovery = "OutputRecovery"
    done_success = "Done(success)"
    done_empty = "Done(empty)"
    done_failed = "Done(failed)"


class TranscriptionEngineAdapter:

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provisioner: Optional[ToolProvisioner] = None,
        spec: ToolSpec = WHISPER,
    ):
        self.settings = settings or get_settings()
        self.provisioner = provisioner or ToolProvisioner(self.settings)
        self.spec = spec
        self.state = EngineState.tool_discovery

    def _transition(self, state: EngineState, job_id: str = "-") -> None:
        logger.debug(f"[Engine] [{job_id}] {self.state.value} → {state.value}")
        self.state = state

    # ── ToolDiscovery ──────────────────────────────────────────────────────

    async def probe(self, candidate: Path) -> Classification:
        output = await run_process(
            [str(candidate), "--help"],
            timeout=self.settings.selftest_timeout_seconds,
            label=f"{candidate.name} self-test",
        )
        return classify(output)

    async def discover(self) -> Path:
        """
        Return the first functional engine executable.

        Raises
        ------
        ToolUnavailable : no candidate could be accepted.
        """
        self.state = EngineState.tool_discovery
        candidates = await asyncio.to_thread(candidate_paths, self.spec, self.settings)

        if not candidates and self.settings.auto_provision:
            logger.info(f"[Engine] No {self.spec.name} binary present — provisioning")
            try:
                await asyncio.to_thread(self.provisioner.provision, self.spec)
            except ProvisionFailed as exc:
                self._transition(EngineState.done_failed)
                raise ToolUnavailable(self.spec.name, ToolKind.missing, str(exc)) from exc
            candidates = await asyncio.to_thread(candidate_paths, self.spec, self.settings)

        if not candidates:
            self._transition(EngineState.done_failed)
            raise ToolUnavailable(self.spec.name, ToolKind.missing)

        rejected: List[str] = []
        stub_seen = False
        for candidate in candidates:
            verdict = await self.probe(candidate)
            if verdict.functional:
                logger.info(f"[Engine] Using {candidate}")
                return candidate

            logger.warning(
                f"[Engine] Rejected {candidate} — {verdict.verdict.value}: {verdict.reason}"
            )
            rejected.append(f"{candidate.name}: {verdict.reason}")
            if verdict.verdict is Verdict.deprecated_stub or (
                verdict.verdict is Verdict.silent_failure
                and candidate.name.lower() in (n.lower() for n in self.spec.deprecated_names)
            ):
                stub_seen = True

        self._transition(EngineState.done_failed)
        kind = ToolKind.deprecated_stub if stub_seen else ToolKind.non_functional
        raise ToolUnavailable(self.spec.name, kind, "; ".join(rejected))

    # ── Execution ──────────────────────────────────────────────────────────

    def build_command(self, binary: Path, job: TranscriptionJob, model_path: Path) -> List[str]:
        cmd = [
            str(binary),
            "-m", str(model_path),
            "-f", str(job.wav_path),
            "-l", job.language,
            "-oj",
            "-of", str(job.output_base),
        ]
        if self.settings.whisper_threads:
            cmd += ["-t", str(self.settings.whisper_threads)]
        return cmd

    async def execute(self, binary: Path, job: TranscriptionJob, model_path: Path) -> ProcessOutput:
        self._transition(EngineState.execution, job.job_id)
        logger.info(f"[Engine] [{job.job_id}] Transcribing | lang={job.language} | model={model_path.name}")

        output = await run_process(
            self.build_command(binary, job, model_path),
            timeout=self.settings.transcription_timeout_seconds,
            cwd=job.scratch_dir,
            label="whisper.cpp",
        )
        if output.returncode not in (0, None) and not output.timed_out:
            logger.warning(
                f"[Engine] [{job.job_id}] {binary.name} exited {output.returncode}; "
                f"keeping its output for recovery"
            )
        return output

    # ── Execution + OutputRecovery ─────────────────────────────────────────

    async def run(
        self,
        binary: Path,
        job: TranscriptionJob,
        model_path: Path,
        audio_duration_ms: Optional[int] = None,
    ) -> RecoveredOutput:
        captured = await self.execute(binary, job, model_path)

        if captured.timed_out:
            logger.error(
                f"[Engine] [{job.job_id}] Timed out after "
                f"{self.settings.transcription_timeout_seconds}s"
            )
            self._transition(EngineState.done_failed, job.job_id)
            return RecoveredOutput(strategy=RecoveryStrategy.none)

        if captured.launch_error:
            logger.error(f"[Engine] [{job.job_id}] {binary.name} could not start: {captured.launch_error}")

        self._transition(EngineState.output_recovery, job.job_id)
        recovered = recover_output(job, captured, audio_duration_ms)
        if not recovered.recovered:
            self._transition(EngineState.done_failed, job.job_id)
        return recovered

    def finish(self, text: str, job_id: str = "-") -> EngineState:
        """Record the terminal state once the assembler has produced text."""
        if self.state is not EngineState.done_failed:
            self._transition(EngineState.done_success if text else EngineState.done_empty, job_id)
        return self.state
