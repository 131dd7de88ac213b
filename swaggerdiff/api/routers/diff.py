from __future__ import annotations

from fastapi import APIRouter, Request

from ..models import ApiDiffRequest, CompareResult, VersionsResult
from ...domain.diff_service import SwaggerDiffService

router = APIRouter()


@router.get("/api-docs/versions", response_model=VersionsResult, response_model_exclude_none=True)
async def list_versions(request: Request) -> VersionsResult:
    service: SwaggerDiffService = request.app.state.swagger_diff
    return VersionsResult(is_success=True, data=service.get_available_versions())


@router.post("/api-docs/compare", response_model=CompareResult, response_model_exclude_none=True)
async def compare(request: Request, body: ApiDiffRequest) -> CompareResult:
    service: SwaggerDiffService = request.app.state.swagger_diff
    result = await service.get_diff(body)
    if result is None:
        return CompareResult(is_success=False, message="Failed to retrieve the diff.")
    return CompareResult(is_success=True, data=result)
