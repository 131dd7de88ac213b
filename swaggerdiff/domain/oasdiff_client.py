from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from ..api.models import ComparisonType
from .oasdiff_downloader import OasDiffDownloader, get_downloader

logger = logging.getLogger(__name__)


class ApiDiffClient(Protocol):
    async def get_diff(
        self, file_one: Path, file_two: Path, comparison_type: ComparisonType
    ) -> Optional[str]: ...


class OasDiffClient:
    """Render the difference between two OpenAPI documents with oasdiff."""

    def __init__(self, downloader: OasDiffDownloader | None = None) -> None:
        self.downloader = downloader or get_downloader()

    async def get_diff(
        self, file_one: Path, file_two: Path, comparison_type: ComparisonType
    ) -> Optional[str]:
        try:
            binary = await self.downloader.get_path()
            proc = await asyncio.create_subprocess_exec(
                str(binary),
                comparison_type.subcommand,
                str(file_one),
                str(file_two),
                "-f",
                "html",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            out, err = await proc.communicate()
        except Exception:
            logger.critical("An error occurred generating the diff", exc_info=True)
            return None

        output = out.decode("utf-8", errors="replace")
        error = err.decode("utf-8", errors="replace")
        # oasdiff does not signal success consistently; blank stderr counts as success
        if proc.returncode == 0 or not error.strip():
            return output
        logger.critical("Error calling oasdiff: %s", error.strip())
        return None
