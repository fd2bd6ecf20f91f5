from __future__ import annotations

from fastapi import APIRouter, Request

from tenant_authz.utils.response import success

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    settings = request.app.state.settings
    return success(
        {"ok": True, "service": settings.SERVICE_NAME, "storage_backend": settings.storage_backend},
        message="healthy",
    )
