"""
Tests for result assembly and per-job cleanup.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from app.speech_pipeline.assembler import assemble, cleanup_job, parse_segments
from app.speech_pipeline.schemas import (
    RecoveredOutput,
    RecoveryStrategy,
    TranscriptionJob,
    TranscriptionResult,
)


@pytest.fixture
def job(tmp_path: Path) -> TranscriptionJob:
    return TranscriptionJob(
        job_id="transcription_2_ffff0000",
        input_path=tmp_path / "transcription_2_ffff0000-talk.mp3",
        language="de",
        scratch_dir=tmp_path,
    )


def _artifact(job: TranscriptionJob, data) -> RecoveredOutput:
    job.json_path.write_text(json.dumps(data) if not isinstance(data, str) else data)
    return RecoveredOutput(strategy=RecoveryStrategy.structured_file, path=job.json_path)


class TestAssemble:
    def test_joins_segments(self, job: TranscriptionJob) -> None:
        recovered = _artifact(job, {"transcription": [
            {"offsets": {"from": 0, "to": 1200}, "text": " Guten"},
            {"offsets": {"from": 1200, "to": 2500}, "text": "  Tag \n"},
        ]})
        result = assemble(recovered, job)
        assert result.text == "Guten Tag"
        assert [(s.start_ms, s.end_ms) for s in result.segments] == [(0, 1200), (1200, 2500)]
        assert result.duration == pytest.approx(2.5)
        assert result.strategy is RecoveryStrategy.structured_file

    def test_falls_back_to_timestamps(self, job: TranscriptionJob) -> None:
        recovered = _artifact(job, {"transcription": [
            {"timestamps": {"from": "00:00:01,000", "to": "00:01:02.5"}, "text": "hi"},
        ]})
        (segment,) = assemble(recovered, job).segments
        assert segment.start_ms == 1000
        assert segment.end_ms == 62_500

    def test_empty_transcription_list(self, job: TranscriptionJob) -> None:
        result = assemble(_artifact(job, {"transcription": []}), job)
        assert result.text == ""
        assert result.segments == []
        assert result.duration == 0.0

    @pytest.mark.parametrize("content", [
        "{ not json }",
        '{"result": {"language": "en"}}',
        '{"transcription": ["just a string"]}',
        "[]",
    ])
    def test_unparsable_artifact_degrades(self, job: TranscriptionJob, content: str) -> None:
        result = assemble(_artifact(job, content), job)
        assert result == TranscriptionResult.empty()

    def test_nothing_recovered(self, job: TranscriptionJob) -> None:
        result = assemble(RecoveredOutput(strategy=RecoveryStrategy.none), job)
        assert result == TranscriptionResult.empty()

    def test_missing_artifact_file(self, job: TranscriptionJob) -> None:
        recovered = RecoveredOutput(strategy=RecoveryStrategy.alternate_file, path=job.alt_json_path)
        assert assemble(recovered, job).text == ""


class TestParseSegments:
    def test_rejects_non_object(self) -> None:
        with pytest.raises(ValueError):
            parse_segments(["a", "b"])

    def test_missing_text_is_empty(self) -> None:
        (segment,) = parse_segments({"transcription": [{"offsets": {"from": 5, "to": 9}}]})
        assert segment.text == ""


class TestCleanup:
    def test_removes_every_job_file(self, job: TranscriptionJob) -> None:
        for path in (job.input_path, job.wav_path, job.json_path, job.alt_json_path):
            path.write_bytes(b"x")
        other = job.scratch_dir / "transcription_3_aaaa0000.wav"
        other.write_bytes(b"x")

        cleanup_job(job)

        assert not job.input_path.exists()
        assert not job.wav_path.exists()
        assert not job.json_path.exists()
        assert not job.alt_json_path.exists()
        assert other.exists()

    def test_tolerates_missing_files(self, job: TranscriptionJob) -> None:
        cleanup_job(job)
