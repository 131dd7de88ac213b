from __future__ import annotations

from fastapi import APIRouter, Request

from ... import __version__

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request) -> dict[str, object]:
    service = request.app.state.swagger_diff
    return {"status": "ready", "snapshots": len(service.get_available_versions())}


@router.get("/version")
async def version() -> dict[str, str]:
    return {"version": __version__}
