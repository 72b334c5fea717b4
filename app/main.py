from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import router
from app.realtime import router as realtime_router
from app.web import router as web_router
from logging_config import configure_logging
from services.fleet import build_default_fleet
from settings import get_settings


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    fleet = build_default_fleet()
    await fleet.startup()
    try:
        yield
    finally:
        await fleet.shutdown()
        build_default_fleet.cache_clear()


async def _http_error_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"ok": False, "message": "Invalid request"},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Bulb Energy Coordinator",
        description="Device sessions, energy transfers and decay for a fleet of bulbs.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router)
    app.include_router(realtime_router)
    app.include_router(web_router)
    return app

app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    logging.getLogger(__name__).info("Starting bulb coordinator on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
