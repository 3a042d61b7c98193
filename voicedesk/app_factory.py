# app_factory.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .errors import VoicedeskError
from .http_routes import http_router
from .services import Services, build_services
from .settings import Settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one pooled HTTP client shared by every backend client
    if getattr(app.state, "services", None) is not None:
        yield
        return
    settings: Settings = app.state.settings
    async with httpx.AsyncClient(timeout=settings.http_timeout) as http:
        app.state.services = build_services(settings, http)
        logger.info(f"Server starting, data dir {settings.data_dir}")
        try:
            yield
        finally:
            logger.info("Server shutting down...")
            app.state.services = None


async def voicedesk_error_handler(request: Request, exc: VoicedeskError) -> JSONResponse:
    logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(title="Voice agent commerce bridge", lifespan=lifespan)
    app.state.settings = settings or (services.settings if services else Settings.from_env())
    app.state.services = services
    app.add_exception_handler(VoicedeskError, voicedesk_error_handler)
    app.include_router(http_router)
    return app
