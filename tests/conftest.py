"""
Test configuration and shared fixtures.

External tools are replaced by small POSIX shell scripts written into the
temporary bin directory, so the real process runner, locator and classifier
are exercised without FFmpeg or whisper.cpp installed.
"""

from __future__ import annotations

import os
import sys
import textwrap
import wave
from pathlib import Path

import pytest

from app.config import Settings

FAKE_FFMPEG = """
    if [ "$2" = "-version" ]; then
        echo "ffmpeg version 6.1-fake Copyright (c) 2000-2023 the FFmpeg developers"
        exit 0
    fi
    for last; do :; done
    src=""
    while [ $# -gt 0 ]; do
        if [ "$1" = "-i" ]; then src="$2"; fi
        shift
    done
    if ! grep -q RIFF "$src"; then
        echo "$src: Invalid data found when processing input" >&2
        exit 1
    fi
    cp "$src" "$last"
"""

BROKEN_FFMPEG = """
    echo "cannot execute binary file: Exec format error" >&2
    exit 126
"""

WHISPER_JSON = (
    '{"transcription":['
    '{"timestamps":{"from":"00:00:00,000","to":"00:00:00,600"},"offsets":{"from":0,"to":600},"text":" Hello"},'
    '{"timestamps":{"from":"00:00:00,600","to":"00:00:01,000"},"offsets":{"from":600,"to":1000},"text":" world"}'
    "]}"
)

_WHISPER_HELP = """
    case "$1" in
        --help|-h) echo "usage: whisper-cli [options] file0.wav file1.wav ..." >&2; exit 0 ;;
    esac
    out=""
    while [ $# -gt 0 ]; do
        case "$1" in
            -of) out="$2"; shift ;;
        esac
        shift
    done
"""

# Writes <-of>.json like current whisper.cpp builds
FAKE_WHISPER = _WHISPER_HELP + f"""
    echo '{WHISPER_JSON}' > "$out.json"
    echo "[00:00:00.000 --> 00:00:00.600]   Hello"
    echo "[00:00:00.600 --> 00:00:01.000]   world"
"""

# Prints the JSON to the terminal, writes no file and exits abnormally
EMBEDDED_WHISPER = _WHISPER_HELP + f"""
    echo "whisper_init_from_file_with_params_no_state: loading model" >&2
    echo "[00:00:00.000 --> 00:00:01.000]   Hello world"
    echo '{WHISPER_JSON}'
    exit 3
"""

DEPRECATED_MAIN = """
    echo "WARNING: The binary 'main' is deprecated." >&2
    echo " Please use 'whisper-cli' instead." >&2
    exit 1
"""


def write_wav(path: Path, seconds: float = 1.0, rate: int = 16000) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(b"\x00\x00" * int(seconds * rate))
    return path


class FakeTools:
    """Writes executable shell scripts into bin_dir under tool names."""

    ffmpeg_ok = FAKE_FFMPEG
    ffmpeg_broken = BROKEN_FFMPEG
    whisper_ok = FAKE_WHISPER
    whisper_embedded = EMBEDDED_WHISPER
    deprecated_main = DEPRECATED_MAIN

    def __init__(self, bin_dir: Path):
        self.bin_dir = Path(bin_dir).resolve()

    def script(self, name: str, body: str) -> Path:
        path = self.bin_dir / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + textwrap.dedent(body).lstrip("\n"))
        path.chmod(0o755)
        return path

    def ffmpeg(self, body: str = FAKE_FFMPEG) -> Path:
        return self.script("ffmpeg", body)

    def whisper(self, body: str = FAKE_WHISPER, name: str = "whisper-cli") -> Path:
        return self.script(name, body)


@pytest.fixture
def fake_tools(settings: Settings) -> FakeTools:
    if sys.platform.startswith("win"):
        pytest.skip("fake tools are POSIX shell scripts")
    return FakeTools(settings.bin_dir)


@pytest.fixture
def wav_file(tmp_path: Path) -> Path:
    """One second of 16 kHz mono silence."""
    return write_wav(tmp_path / "clip.wav")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in tmp_path, with provisioning off and short timeouts."""
    return Settings(
        _env_file=None,
        bin_dir=tmp_path / "bin",
        models_dir=tmp_path / "models",
        uploads_dir=tmp_path / "uploads",
        temp_dir=tmp_path / "temp",
        auto_provision=False,
        min_download_bytes=10,
        min_model_bytes=1,
        selftest_timeout_seconds=10,
        conversion_timeout_seconds=10,
        transcription_timeout_seconds=10,
    )


@pytest.fixture
def model_file(settings: Settings) -> Path:
    path = Path(settings.model_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"ggml" * 16)
    return path


@pytest.fixture(autouse=True)
def no_global_tools(request, monkeypatch):
    """Keep tools installed on the test machine out of PATH lookups."""
    if request.node.get_closest_marker("real_path_lookup"):
        return
    monkeypatch.setattr("app.tools.locator._probe_global", lambda name: None)


@pytest.fixture
def fake_which(tmp_path: Path, monkeypatch):
    """
    Put a shell `which` answering from a name → path table first on PATH.

    Returns a function(table, delay=0) that (re)writes the script.
    """
    if sys.platform.startswith("win"):
        pytest.skip("PATH lookup uses `where` on Windows")
    path_dir = tmp_path / "path-bin"
    path_dir.mkdir()
    monkeypatch.setenv("PATH", f"{path_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def install(table: dict, delay: float = 0) -> Path:
        cases = "".join(f'    {name}) echo "{hit}"; exit 0 ;;\n' for name, hit in table.items())
        script = path_dir / "which"
        script.write_text(
            "#!/bin/sh\n"
            + (f"sleep {delay}\n" if delay else "")
            + 'case "$1" in\n'
            + cases
            + "esac\n"
            + "exit 1\n"
        )
        script.chmod(0o755)
        return script

    return install
