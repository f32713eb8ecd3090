"""
Voxcribe — Application Configuration
Reads settings from environment variables / .env file.
"""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── App ──────────────────────────────────────────────────
    app_name: str = "Voxcribe — Transcription API"
    app_version: str = "0.1.0"
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000"]

    # ── Directories ──────────────────────────────────────────
    bin_dir: Path = Path("bin")
    models_dir: Path = Path("models")
    uploads_dir: Path = Path("uploads")
    temp_dir: Path = Path("temp")

    # ── whisper.cpp model ────────────────────────────────────
    whisper_model: str = "small"
    # Tried in order; "{model}" is replaced with whisper_model
    whisper_model_urls: list[str] = [
        "https://huggingface.co/ggerganov/whisper.cpp/resolve/main/ggml-{model}.bin",
        "https://huggingface.co/ggml-org/whisper.cpp/resolve/main/ggml-{model}.bin",
    ]
    # Threads passed to whisper.cpp (-t). None = engine default.
    whisper_threads: Optional[int] = None

    # ── Provisioning ─────────────────────────────────────────
    auto_provision: bool = True
    provision_on_startup: bool = False
    # Downloads below this size are HTML error pages, not binaries
    min_download_bytes: int = 100_000
    min_model_bytes: int = 1_000_000
    download_timeout_seconds: float = 120.0

    # ── External process timeouts (seconds) ──────────────────
    selftest_timeout_seconds: float = 20.0
    conversion_timeout_seconds: float = 600.0
    transcription_timeout_seconds: float = 3600.0
    build_timeout_seconds: float = 1800.0

    @property
    def model_path(self) -> Path:
        return self.models_dir / f"ggml-{self.whisper_model}.bin"


@lru_cache
def get_settings() -> Settings:
    """Cache-backed settings loader."""
    return Settings()
