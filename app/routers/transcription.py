"""
Voxcribe — Transcription Router

API endpoint for audio transcription.

    POST  /api/transcribe
        Multipart upload: `file` (audio, any format FFmpeg decodes) and
        `language` (required, from the supported-language table).
"""

from typing import Optional

from fastapi import APIRouter, UploadFile, File, Form, Response, status, Depends
from fastapi.responses import JSONResponse
from loguru import logger

from app.config import Settings, get_settings
from app.exceptions import ToolUnavailable, UserInputError
from app.languages import SUPPORTED_LANGUAGE_CODES, is_supported
from app.schemas import ErrorResponse, TranscriptionResponse
from app.speech_pipeline import (
    TranscriptionJob,
    remediation_for,
    run_transcription,
    save_upload_to_temp,
)
from app.speech_pipeline.schemas import new_job_id

router = APIRouter(prefix="/api", tags=["Transcription"])

RECOVERY_HEADER = "X-Transcript-Recovery"


def _error(status_code: int, error: str, remediation: Optional[str] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, remediation=remediation).model_dump(),
    )


def _validate(file: Optional[UploadFile], language: Optional[str]) -> str:
    """Reject bad input before anything touches the disk. Returns the language code."""
    if file is None or not file.filename:
        raise UserInputError("No file uploaded", "Send the audio in the multipart field 'file'.")
    if not language or not language.strip():
        raise UserInputError(
            "Language is required",
            "Send a language code in the multipart field 'language', e.g. 'en'.",
        )
    code = language.strip().lower()
    if not is_supported(code):
        raise UserInputError(
            "Unsupported language",
            f"Supported codes: {', '.join(sorted(SUPPORTED_LANGUAGE_CODES))}.",
        )
    return code


@router.post(
    "/transcribe",
    response_model=TranscriptionResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing file or unsupported language"},
        503: {"model": ErrorResponse, "description": "FFmpeg / whisper.cpp unavailable"},
    },
    summary="Transcribe an audio file",
    description=(
        "Upload an **audio file** and a **language** code. The audio is converted "
        "to 16 kHz mono WAV with FFmpeg and transcribed with whisper.cpp. "
        "Files FFmpeg cannot decode return an empty transcript rather than an error."
    ),
    status_code=status.HTTP_200_OK,
)
async def transcribe(
    response: Response,
    file: Optional[UploadFile] = File(default=None, description="Audio recording."),
    language: Optional[str] = Form(default=None, description="Language code, e.g. 'en'."),
    settings: Settings = Depends(get_settings),
):
    try:
        code = _validate(file, language)
    except UserInputError as e:
        logger.info(f"[TranscribeRouter] Rejected request: {e.message}")
        return _error(status.HTTP_400_BAD_REQUEST, e.message, e.remediation)

    job_id = new_job_id()
    logger.info(f"[TranscribeRouter] [{job_id}] Upload: {file.filename} | lang={code}")

    input_path = await save_upload_to_temp(file, job_id, settings.uploads_dir)
    job = TranscriptionJob(
        job_id=job_id,
        input_path=input_path,
        language=code,
        scratch_dir=settings.temp_dir.resolve(),
    )

    try:
        result = await run_transcription(job, settings)
    except ToolUnavailable as e:
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            f"Transcription unavailable: {e}",
            remediation_for(e, settings),
        )

    response.headers[RECOVERY_HEADER] = result.strategy.value
    return TranscriptionResponse.from_result(result)
