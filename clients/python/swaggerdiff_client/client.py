from __future__ import annotations

from typing import Any, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field


class ApiResult(BaseModel):
    is_success: bool = Field(alias="isSuccess")
    data: Any = None
    message: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class SwaggerDiffClient:
    """Async client for the endpoints mounted by ``use_swagger_diff``."""

    def __init__(
        self,
        base_url: str,
        route_prefix: str = "/swagger-diff",
        timeout: int = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.route_prefix = "/" + route_prefix.strip("/") if route_prefix.strip("/") else ""
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SwaggerDiffClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _url(self, path: str) -> str:
        return f"{self.route_prefix}/api-docs/{path}"

    async def versions(self) -> List[str]:
        resp = await self._client.get(self._url("versions"))
        resp.raise_for_status()
        result = ApiResult(**resp.json())
        return list(result.data or []) if result.is_success else []

    async def compare_result(
        self, old_version: str, new_version: str, comparison_type: str = "diff"
    ) -> ApiResult:
        payload = {
            "oldVersionName": old_version,
            "newVersionName": new_version,
            "comparisonType": comparison_type,
        }
        resp = await self._client.post(self._url("compare"), json=payload)
        resp.raise_for_status()
        return ApiResult(**resp.json())

    async def compare(
        self, old_version: str, new_version: str, comparison_type: str = "diff"
    ) -> Optional[str]:
        """Rendered HTML diff, or None when the server could not produce one."""
        result = await self.compare_result(old_version, new_version, comparison_type)
        return result.data if result.is_success else None
