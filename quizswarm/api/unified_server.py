"""
Unified Server
==============
Builds the FastAPI application exposing the bot service over REST.
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ..application.services.quiz_bot_service import QuizBotService
from ..core.exceptions import QuizSwarmError
from ..core.logger import StructuredLogger
from ..infrastructure.config.config_loader import get_settings_from_working_directory
from ..infrastructure.config.settings import AppSettings
from .error_mapper import ErrorMapper
from .probe_routes import pins_router, router as probe_router
from .response_envelope import json_error, json_ok
from .session_routes import router as session_router


def create_app(settings: Optional[AppSettings] = None,
               service: Optional[QuizBotService] = None) -> FastAPI:
    """Creates the FastAPI application. A passed-in ``service`` is started and stopped with the app."""
    settings = settings or get_settings_from_working_directory()
    logger = StructuredLogger("UnifiedServer", settings.logging)
    service = service or QuizBotService(settings, logger)
    error_mapper = ErrorMapper()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("unified_server.starting", {"host": settings.api.host, "port": settings.api.port})
        await service.start()
        app.state.bot_service = service
        try:
            yield
        finally:
            await service.shutdown()
            app.state.bot_service = None
            logger.info("unified_server.stopped")

    app = FastAPI(title="quizswarm", version=settings.version, debug=settings.debug, lifespan=lifespan)
    app.state.settings = settings
    app.state.error_mapper = error_mapper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    async def handle_domain_error(request: Request, exc: Exception):
        info = error_mapper.map_exception(exc)
        log = logger.error if info.http_status >= 500 else logger.warning
        log("api.request_failed", {
            "path": request.url.path,
            "method": request.method,
            "error_code": info.error_code,
            "error_type": type(exc).__name__,
            "error": str(exc)
        })
        return json_error(info)

    app.add_exception_handler(QuizSwarmError, handle_domain_error)
    app.add_exception_handler(ValueError, handle_domain_error)

    app.include_router(session_router)
    app.include_router(pins_router)
    app.include_router(probe_router)

    @app.get("/api/health")
    async def health():
        return json_ok(service.health())

    return app


def run() -> None:
    settings = get_settings_from_working_directory()
    uvicorn.run(create_app(settings), host=settings.api.host, port=settings.api.port)
