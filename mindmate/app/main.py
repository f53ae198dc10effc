# mindmate/app/main.py
from __future__ import annotations
import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mindmate.core.config import CORS_ORIGINS, LOG_LEVEL
from mindmate.app.deps import AppServices, build_services
from mindmate.app.routes_auth import router as auth_router
from mindmate.app.routes_chat import router as chat_router
from mindmate.app.routes_dashboard import router as dashboard_router
from mindmate.app.routes_health import router as health_router

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)

logger = logging.getLogger(__name__)


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    app = FastAPI(
        title="MindMate",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.services = services or build_services()

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(chat_router)
    app.include_router(dashboard_router)

    logger.info(
        "FastAPI app initialized (log_level=%s, storage=%s)",
        LOG_LEVEL,
        app.state.services.settings.storage_backend,
    )
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mindmate.app.main:app",
        host="127.0.0.1",
        port=8000,
    )
