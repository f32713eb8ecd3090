"""
Voxcribe — FastAPI Entry Point

Turnkey speech-to-text API: FFmpeg conversion + whisper.cpp transcription,
with both native tools located or installed on demand.
"""

import asyncio
import platform
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from loguru import logger

from app.config import get_settings
from app.exceptions import VoxcribeError
from app.routers import transcription
from app.schemas import ErrorResponse, HealthResponse
from app.tools import FFMPEG, TOOLS, WHISPER, ToolProvisioner, locate
from app.tools.specs import current_platform

settings = get_settings()


def init_directories() -> None:
    for directory in (settings.uploads_dir, settings.temp_dir, settings.bin_dir, settings.models_dir):
        Path(directory).mkdir(parents=True, exist_ok=True)


def provision_all() -> None:
    """Install whatever is missing. Each step is independent and non-fatal."""
    provisioner = ToolProvisioner(settings)
    for spec in TOOLS.values():
        try:
            tool = provisioner.provision(spec)
            logger.info(f"🔧 {spec.name}: {tool.path} ({tool.origin.value})")
        except VoxcribeError as e:
            logger.warning(f"{spec.name} provisioning skipped: {e}")
    try:
        provisioner.provision_model()
    except VoxcribeError as e:
        logger.warning(f"Model download skipped: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup / shutdown lifecycle."""
    logger.info(f"🚀 Starting {settings.app_name} v{settings.app_version}")

    try:
        init_directories()
    except OSError as e:
        logger.error(f"Error initializing directories: {e}")

    if settings.provision_on_startup:
        await asyncio.to_thread(provision_all)

    ffmpeg = await asyncio.to_thread(locate, FFMPEG, settings)
    logger.info(f"📌 ffmpeg: {ffmpeg.path} ({ffmpeg.origin.value})")

    yield
    logger.info("🛑 Shutting down Voxcribe API")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Upload an audio file and a language code, get a transcript back. "
        "FFmpeg and whisper.cpp are located or installed automatically."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# ── CORS ──────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ───────────────────────────────────────────────────────────────
app.include_router(transcription.router)


@app.exception_handler(VoxcribeError)
async def voxcribe_error_handler(request: Request, exc: VoxcribeError):
    logger.error(f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error=str(exc)).model_dump(),
    )


# ── Health ────────────────────────────────────────────────────────────────
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health():
    ffmpeg = await asyncio.to_thread(locate, FFMPEG, settings)
    whisper = await asyncio.to_thread(locate, WHISPER, settings)
    model_path = Path(settings.model_path).resolve()
    return HealthResponse(
        status="OK",
        platform=f"{current_platform()} ({platform.machine()})",
        ffmpeg_ready=ffmpeg.found,
        ffmpeg_path=str(ffmpeg.path),
        whisper_ready=whisper.found,
        whisper_path=str(whisper.path),
        model_ready=model_path.is_file(),
    )
