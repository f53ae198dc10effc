# mindmate/app/routes_health.py

from __future__ import annotations
from fastapi import APIRouter, Depends

from mindmate.app.deps import AppServices, get_services

router = APIRouter()


@router.get("/health")
async def health(services: AppServices = Depends(get_services)):
    """
    Simple liveness check.

    - also reports which storage backend and reply mode the process runs with
    """
    return {
        "status": "ok",
        "service": "mindmate",
        "storage_backend": services.settings.storage_backend,
        "llm_enabled": services.analyzer.chat_client is not None,
        "auth_enabled": services.auth is not None,
    }
