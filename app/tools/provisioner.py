"""
Voxcribe — Tool Provisioner
Module : app/tools/provisioner.py

Installs FFmpeg / whisper.cpp (and the whisper ggml model) when the locator
cannot resolve them.

Strategy
--------
archive-extract     : download a prebuilt archive (primary URL, then
                      mirrors), extract it natively (PowerShell / tar) or
                      with Python as a second attempt, pick the best
                      executable from the tree, copy it and its sibling
                      support files (DLLs etc.) into bin_dir.
compile-from-source : download a source tarball, build it with CMake (or
                      make for older trees), verify the expected build
                      output, copy it into bin_dir.

Every attempt runs inside a private work directory under bin_dir which is
removed on the way out, whatever happened. There is no cross-process install
lock: two first-time requests may both download, the later copy wins.

This module never produces user-facing remediation text; callers do.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import tarfile
import uuid
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import httpx
from loguru import logger

from app.config import Settings, get_settings
from app.exceptions import ProvisionFailed
from app.tools.locator import ToolLocation, ToolOrigin, locate
from app.tools.specs import InstallStrategy, PlatformTarget, ToolSpec, current_platform

# Some hosts answer 403 to clients without a browser-like agent
_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"
_EXTRACT_TIMEOUT = 600
_CHUNK_SIZE = 1024 * 1024

# Tried in order inside the extracted source root
_BUILD_RECIPES: List[List[List[str]]] = [
    [
        ["cmake", "-B", "build", "-DCMAKE_BUILD_TYPE=Release",
         "-DBUILD_SHARED_LIBS=OFF", "-DWHISPER_BUILD_TESTS=OFF"],
        ["cmake", "--build", "build", "--config", "Release", "-j", str(os.cpu_count() or 2)],
    ],
    [
        ["make", f"-j{os.cpu_count() or 2}"],
    ],
]


@dataclass(frozen=True)
class ProvisionedTool:
    path:   Path
    origin: ToolOrigin


class ToolProvisioner:
    """
    Parameters
    ----------
    settings : Settings
        Directories, size guards and timeouts.
    transport : httpx.BaseTransport, optional
        Injected into the download client (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.transport = transport

    # ── Public API ─────────────────────────────────────────────────────────

    def provision(self, spec: ToolSpec) -> ProvisionedTool:
        """
        Make `spec` resolvable, installing it if needed.

        Raises
        ------
        ProvisionFailed : every source and strategy was exhausted.
        """
        existing = locate(spec, self.settings)
        if existing.found:
            return ProvisionedTool(path=existing.path, origin=existing.origin)

        target = spec.target()
        bin_dir = Path(self.settings.bin_dir).resolve()
        bin_dir.mkdir(parents=True, exist_ok=True)

        work_dir = bin_dir / f".provision-{_slug(spec.name)}-{uuid.uuid4().hex[:8]}"
        work_dir.mkdir(parents=True)
        attempts: List[str] = []

        logger.info(
            f"[Provisioner] Installing {spec.name} ({target.strategy.value}) "
            f"for {current_platform()} → {bin_dir}"
        )
        try:
            with self._client() as client:
                for index, url in enumerate(target.sources):
                    attempt_dir = work_dir / f"attempt-{index}"
                    attempt_dir.mkdir()
                    installed = self._attempt(spec, target, url, client, attempt_dir, attempts)
                    if installed is not None:
                        return installed
        finally:
            _remove_tree(work_dir)

        logger.error(f"[Provisioner] {spec.name}: all sources exhausted")
        raise ProvisionFailed(spec.name, attempts)

    def provision_model(self) -> Path:
        """
        Ensure the configured ggml model file exists and is not a stub.

        Raises
        ------
        ProvisionFailed : no model URL produced a plausible file.
        """
        settings = self.settings
        model_path = Path(settings.model_path).resolve()
        if model_path.is_file() and model_path.stat().st_size >= settings.min_model_bytes:
            return model_path

        model_path.parent.mkdir(parents=True, exist_ok=True)
        partial = model_path.with_name(f".{model_path.name}.{uuid.uuid4().hex[:8]}.part")
        attempts: List[str] = []
        name = f"model ggml-{settings.whisper_model}"

        logger.info(f"[Provisioner] Downloading whisper {name} → {model_path}")
        try:
            with self._client() as client:
                for template in settings.whisper_model_urls:
                    url = template.format(model=settings.whisper_model)
                    if not self._download(client, url, partial, settings.min_model_bytes, attempts):
                        continue
                    os.replace(partial, model_path)
                    logger.info(f"[Provisioner] ✅ {name} ready ({model_path.stat().st_size} bytes)")
                    return model_path
        finally:
            try:
                partial.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(f"[Provisioner] Could not remove {partial}: {exc}")

        raise ProvisionFailed(name, attempts)

    # ── One source URL ─────────────────────────────────────────────────────

    def _attempt(
        self,
        spec: ToolSpec,
        target: PlatformTarget,
        url: str,
        client: httpx.Client,
        attempt_dir: Path,
        attempts: List[str],
    ) -> Optional[ProvisionedTool]:
        download = attempt_dir / "download"
        if not self._download(client, url, download, self.settings.min_download_bytes, attempts):
            return None

        extract_dir = attempt_dir / "extracted"
        extract_dir.mkdir()
        try:
            archive = _with_archive_suffix(download)
            self._extract(archive, extract_dir)
        except (OSError, ValueError, zipfile.BadZipFile, tarfile.TarError, shutil.ReadError) as exc:
            attempts.append(f"{url}: extraction failed ({exc})")
            logger.warning(f"[Provisioner] Extraction failed for {url}: {exc}")
            return None

        if target.strategy is InstallStrategy.compile_from_source:
            executable = self._build(spec, target, extract_dir, attempts, url)
            siblings = False
        else:
            executable = find_executable(extract_dir, target.executable_names)
            siblings = True
            if executable is None:
                attempts.append(f"{url}: no {'/'.join(target.executable_names)} in archive")
                logger.warning(f"[Provisioner] No acceptable executable inside {url}")
        if executable is None:
            return None

        # Another request may have finished installing while we downloaded
        current = locate(spec, self.settings)
        if current.found:
            logger.info(f"[Provisioner] {spec.name} appeared at {current.path} meanwhile; skipping copy")
            return ProvisionedTool(path=current.path, origin=current.origin)

        installed = self._install(executable, siblings)
        if executable.name.lower() in (n.lower() for n in spec.deprecated_names):
            logger.warning(
                f"[Provisioner] Only {executable.name} was available for {spec.name}; "
                f"newer releases ship it as a deprecation stub."
            )

        resolved: ToolLocation = locate(spec, self.settings)
        if not resolved.found:
            attempts.append(f"{url}: installed {installed.name} is not a recognised candidate")
            return None
        logger.info(f"[Provisioner] ✅ {spec.name} installed → {resolved.path}")
        return ProvisionedTool(path=resolved.path, origin=ToolOrigin.just_installed)

    # ── Download ───────────────────────────────────────────────────────────

    def _client(self) -> httpx.Client:
        return httpx.Client(
            transport=self.transport,
            follow_redirects=True,
            timeout=self.settings.download_timeout_seconds,
            headers={"User-Agent": _USER_AGENT},
        )

    def _download(
        self,
        client: httpx.Client,
        url: str,
        dest: Path,
        min_bytes: int,
        attempts: List[str],
    ) -> bool:
        """Stream `url` to `dest`. False (with the reason recorded) on any failure."""
        logger.info(f"[Provisioner] Trying {url}")
        try:
            with client.stream("GET", url) as response:
                response.raise_for_status()
                with dest.open("wb") as fh:
                    for chunk in response.iter_bytes(_CHUNK_SIZE):
                        fh.write(chunk)
        except (httpx.HTTPError, OSError) as exc:
            attempts.append(f"{url}: {exc}")
            logger.warning(f"[Provisioner] Download failed: {url} ({exc})")
            dest.unlink(missing_ok=True)
            return False

        size = dest.stat().st_size
        if size < min_bytes:
            attempts.append(f"{url}: artifact too small ({size} bytes)")
            logger.warning(
                f"[Provisioner] {url} returned {size} bytes (< {min_bytes}); "
                f"probably an error page"
            )
            dest.unlink(missing_ok=True)
            return False

        logger.info(f"[Provisioner] Downloaded {size / 1024 / 1024:.1f} MB")
        return True

    # ── Extraction ─────────────────────────────────────────────────────────

    def _extract(self, archive: Path, dest: Path) -> None:
        if self._extract_native(archive, dest):
            return
        logger.info(f"[Provisioner] Native extraction failed, retrying with Python: {archive.name}")
        _empty_dir(dest)
        if zipfile.is_zipfile(archive):
            shutil.unpack_archive(str(archive), str(dest), format="zip")
        elif tarfile.is_tarfile(archive):
            shutil.unpack_archive(str(archive), str(dest), format="tar")
        else:
            raise ValueError(f"{archive.name} is not a zip or tar archive")

    def _extract_native(self, archive: Path, dest: Path) -> bool:
        if current_platform() == "win32":
            cmd = [
                "powershell.exe", "-NoProfile", "-NonInteractive",
                "-ExecutionPolicy", "Bypass", "-Command",
                f"Expand-Archive -LiteralPath '{archive}' -DestinationPath '{dest}' -Force",
            ]
        else:
            cmd = ["tar", "-xf", str(archive), "-C", str(dest)]

        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=_EXTRACT_TIMEOUT)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug(f"[Provisioner] {cmd[0]} unavailable: {exc}")
            return False
        if proc.returncode != 0:
            logger.debug(f"[Provisioner] {cmd[0]} exited {proc.returncode}: {proc.stderr.strip()[:300]}")
            return False
        return True

    # ── Build from source ──────────────────────────────────────────────────

    def _build(
        self,
        spec: ToolSpec,
        target: PlatformTarget,
        extract_dir: Path,
        attempts: List[str],
        url: str,
    ) -> Optional[Path]:
        source_root = find_source_root(extract_dir)
        if source_root is None:
            attempts.append(f"{url}: no CMakeLists.txt or Makefile in source archive")
            return None

        logger.info(f"[Provisioner] Building {spec.name} in {source_root} (this takes a while)")
        for recipe in _BUILD_RECIPES:
            if not all(self._run_build_step(step, source_root) for step in recipe):
                continue
            for rel in target.build_outputs:
                output = source_root / rel
                if output.is_file():
                    return output
            logger.warning(f"[Provisioner] '{recipe[0][0]}' finished but produced none of {target.build_outputs}")

        attempts.append(f"{url}: build failed or produced no executable")
        return None

    def _run_build_step(self, cmd: List[str], cwd: Path) -> bool:
        try:
            proc = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.settings.build_timeout_seconds,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning(f"[Provisioner] Build step '{' '.join(cmd)}' could not run: {exc}")
            return False
        if proc.returncode != 0:
            logger.warning(
                f"[Provisioner] Build step '{' '.join(cmd)}' exited {proc.returncode}: "
                f"{proc.stderr.strip()[-500:]}"
            )
            return False
        return True

    # ── Install ────────────────────────────────────────────────────────────

    def _install(self, executable: Path, with_siblings: bool) -> Path:
        bin_dir = Path(self.settings.bin_dir).resolve()
        sources = [executable]
        if with_siblings:
            sources += sorted(
                p for p in executable.parent.iterdir()
                if p.is_file() and p != executable
            )

        for src in sources:
            dest = bin_dir / src.name
            shutil.copy2(src, dest)
            clear_quarantine(dest)
            dest.chmod(0o755)
            logger.debug(f"[Provisioner] Copied {src.name} → {dest}")
        return bin_dir / executable.name


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

def find_executable(root: Path, names: List[str]) -> Optional[Path]:
    """
    First file under `root` matching `names`, name priority first.
    Archive layouts differ per release (bin/, Release/, top level), so the
    whole tree is searched.
    """
    files = sorted(p for p in root.rglob("*") if p.is_file())
    for name in names:
        for path in files:
            if path.name.lower() == name.lower():
                return path
    return None


def find_source_root(root: Path) -> Optional[Path]:
    """Shallowest directory holding a CMakeLists.txt, else a Makefile."""
    for marker in ("CMakeLists.txt", "Makefile"):
        hits = sorted(root.rglob(marker), key=lambda p: (len(p.parts), str(p)))
        if hits:
            return hits[0].parent
    return None


def clear_quarantine(path: Path) -> None:
    """Drop the 'downloaded from the internet' marker so the OS lets it run."""
    platform = current_platform()
    if platform == "darwin":
        try:
            # Exit status is non-zero when the attribute was never set
            subprocess.run(
                ["xattr", "-d", "com.apple.quarantine", str(path)],
                capture_output=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug(f"[Provisioner] xattr unavailable for {path.name}: {exc}")
    elif platform == "win32":
        try:
            os.remove(f"{path}:Zone.Identifier")
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.debug(f"[Provisioner] Could not unblock {path.name}: {exc}")


def _with_archive_suffix(path: Path) -> Path:
    """Expand-Archive refuses files without .zip, so name the download by content."""
    if zipfile.is_zipfile(path):
        suffix = ".zip"
    elif tarfile.is_tarfile(path):
        suffix = ".tar"
    else:
        return path
    renamed = path.with_name(path.name + suffix)
    path.rename(renamed)
    return renamed


def _empty_dir(path: Path) -> None:
    for child in path.iterdir():
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()


def _remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
        logger.debug(f"[Provisioner] Removed work dir {path}")
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning(f"[Provisioner] Could not clean up {path}: {exc}")


def _slug(name: str) -> str:
    return "".join(c if c.isalnum() else "-" for c in name.lower())
