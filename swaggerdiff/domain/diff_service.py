from __future__ import annotations

import logging
from typing import List, Optional

from ..api.models import ApiDiffRequest
from ..settings import Settings, get_settings
from .oasdiff_client import ApiDiffClient, OasDiffClient
from .oasdiff_downloader import get_downloader
from .snapshot_store import SnapshotStore

log = logging.getLogger(__name__)


class SwaggerDiffService:
    def __init__(self, client: ApiDiffClient, store: SnapshotStore) -> None:
        self.client = client
        self.store = store

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SwaggerDiffService":
        settings = settings or get_settings()
        store = SnapshotStore(settings.versions_path(), settings.FILE_PATTERN)
        return cls(OasDiffClient(get_downloader(settings)), store)

    def get_available_versions(self) -> List[str]:
        return self.store.list_versions()

    async def get_diff(self, request: ApiDiffRequest) -> Optional[str]:
        file_one = self.store.get_file_path(request.old_version_name)
        file_two = self.store.get_file_path(request.new_version_name)
        if file_one is None or file_two is None:
            log.info(
                "snapshot not found",
                extra={"old": request.old_version_name, "new": request.new_version_name},
            )
            return None
        return await self.client.get_diff(file_one, file_two, request.comparison_type)
