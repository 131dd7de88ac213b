"""Locate or download the oasdiff binary.

Downloaded binaries are cached in ``~/.swaggerdiff/bin/<version>/``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import platform
import shutil
import tarfile
from pathlib import Path
from typing import Dict, Optional, Tuple

import httpx

from ..settings import Settings, get_settings

logger = logging.getLogger(__name__)

RELEASE_URL = "https://github.com/oasdiff/oasdiff/releases/download/v{version}/{file_name}"
_REMEDIATION = (
    "You can install oasdiff manually (https://github.com/oasdiff/oasdiff) "
    "or set SWAGGERDIFF_OASDIFF_PATH to point to an existing binary."
)


class OasDiffNotFoundError(FileNotFoundError):
    """The explicitly configured oasdiff path does not exist."""


class OasDiffDownloadError(RuntimeError):
    """Fetching the release archive failed. Re-running may succeed."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class UnsupportedPlatformError(RuntimeError):
    pass


class ArchiveFormatError(RuntimeError):
    pass


def binary_name(system: Optional[str] = None) -> str:
    system = (system or platform.system()).lower()
    return "oasdiff.exe" if system == "windows" else "oasdiff"


def platform_identifier(system: Optional[str] = None, machine: Optional[str] = None) -> Tuple[str, str]:
    system = (system or platform.system()).lower()
    machine = (machine or platform.machine()).lower()
    if system == "windows":
        os_name = "windows"
    elif system == "darwin":
        # macOS releases are universal binaries
        return "darwin", "all"
    else:
        os_name = "linux"
    if machine in {"x86_64", "amd64"}:
        arch = "amd64"
    elif machine in {"arm64", "aarch64"}:
        arch = "arm64"
    else:
        raise UnsupportedPlatformError(
            f"Unsupported architecture: {machine}. "
            "Install oasdiff manually and set SWAGGERDIFF_OASDIFF_PATH."
        )
    return os_name, arch


class OasDiffDownloader:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self._lock = asyncio.Lock()

    @property
    def cached_path(self) -> Path:
        return self.settings.cache_root() / self.settings.OASDIFF_VERSION / binary_name()

    async def get_path(self) -> Path:
        """Return the oasdiff binary, downloading it on first use."""
        explicit = self.settings.OASDIFF_PATH
        if explicit:
            path = Path(explicit)
            if path.is_file():
                return path
            raise OasDiffNotFoundError(f"Configured OASDIFF_PATH does not exist: {explicit}")

        found = shutil.which(binary_name())
        if found:
            logger.debug("Found oasdiff on PATH: %s", found)
            return Path(found)

        cached = self.cached_path
        if cached.is_file():
            logger.debug("Using cached oasdiff: %s", cached)
            return cached

        async with self._lock:
            # another caller may have finished the download while we waited
            if cached.is_file():
                return cached
            await self._download(cached)
            return cached

    def release_url(self) -> str:
        version = self.settings.OASDIFF_VERSION
        os_name, arch = platform_identifier()
        file_name = f"oasdiff_{version}_{os_name}_{arch}.tar.gz"
        return RELEASE_URL.format(version=version, file_name=file_name)

    async def _download(self, target: Path) -> None:
        url = self.release_url()
        version = self.settings.OASDIFF_VERSION
        logger.info("Downloading oasdiff v%s from %s ...", version, url)

        target.parent.mkdir(parents=True, exist_ok=True)
        archive = target.parent / url.rsplit("/", 1)[-1]
        try:
            await self._fetch(url, archive)
            logger.debug("Download complete, extracting...")
            await asyncio.to_thread(self._extract, archive, target)
        finally:
            if archive.exists():
                archive.unlink()
        logger.info("oasdiff v%s installed to %s", version, target)

    async def _fetch(self, url: str, archive: Path) -> None:
        timeout = httpx.Timeout(self.settings.DOWNLOAD_TIMEOUT_S, connect=10.0)
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=timeout, follow_redirects=True
            ) as client:
                async with client.stream("GET", url) as resp:
                    if resp.status_code >= 400:
                        raise OasDiffDownloadError(
                            f"Failed to download oasdiff: HTTP {resp.status_code} from {url}. {_REMEDIATION}",
                            url,
                        )
                    with archive.open("wb") as fh:
                        async for chunk in resp.aiter_bytes():
                            fh.write(chunk)
        except httpx.TimeoutException as exc:
            raise OasDiffDownloadError(
                f"Timed out downloading oasdiff from {url}. {_REMEDIATION}", url
            ) from exc
        except httpx.HTTPError as exc:
            raise OasDiffDownloadError(
                f"Failed to download oasdiff from {url}: {exc}. {_REMEDIATION}", url
            ) from exc

    @staticmethod
    def _extract(archive: Path, target: Path) -> None:
        name = binary_name()
        partial = target.with_name(target.name + ".partial")
        try:
            with tarfile.open(archive, mode="r:gz") as tf:
                member = next(
                    (
                        m
                        for m in tf.getmembers()
                        if m.isfile() and m.name.lower().endswith(name)
                    ),
                    None,
                )
                if member is None:
                    raise ArchiveFormatError(
                        f"Could not find '{name}' inside the downloaded archive. "
                        "The release format may have changed."
                    )
                src = tf.extractfile(member)
                if src is None:
                    raise ArchiveFormatError(f"'{member.name}' in the downloaded archive is not a regular file.")
                with src, partial.open("wb") as out:
                    shutil.copyfileobj(src, out)
        except tarfile.TarError as exc:
            partial.unlink(missing_ok=True)
            raise ArchiveFormatError(f"Downloaded archive is not a valid tar.gz: {exc}") from exc
        except Exception:
            partial.unlink(missing_ok=True)
            raise
        if os.name != "nt":
            partial.chmod(0o755)
        os.replace(partial, target)


_downloaders: Dict[Tuple[Optional[str], str, str], OasDiffDownloader] = {}


def get_downloader(settings: Settings | None = None) -> OasDiffDownloader:
    """Process-wide downloader so concurrent callers share one download lock."""
    settings = settings or get_settings()
    key = (settings.OASDIFF_PATH, settings.OASDIFF_VERSION, str(settings.cache_root()))
    downloader = _downloaders.get(key)
    if downloader is None:
        downloader = _downloaders[key] = OasDiffDownloader(settings)
    return downloader
