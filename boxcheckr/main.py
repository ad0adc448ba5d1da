from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware
from starlette.staticfiles import StaticFiles

from boxcheckr.api.admin import router as admin_router
from boxcheckr.api.api import router as api_router
from boxcheckr.api.routes import router as web_router
from boxcheckr.api.templating import templates
from boxcheckr.core.config import Settings
from boxcheckr.core.errors import AuthenticationError, BoxcheckrError
from boxcheckr.core.logging import configure_logging
from boxcheckr.db.session import build_engine, build_sessionmaker, init_models
from boxcheckr.services.identity import IdentityProvider, OIDCProvider

logger = logging.getLogger(__name__)

STATIC_DIR = Path(__file__).resolve().parent / "static"


def _wants_json(request: Request) -> bool:
    return request.url.path.startswith("/api/")


def _error_response(request: Request, status_code: int, message: str):
    if _wants_json(request):
        headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
        return JSONResponse(content={"detail": message}, status_code=status_code, headers=headers)
    return templates.TemplateResponse(
        request,
        "error.html",
        {"user": None, "title": "Error", "status_code": status_code, "message": message},
        status_code=status_code,
    )


def create_app(settings: Settings | None = None, identity_provider: IdentityProvider | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)

    engine = build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_create_schema:
            await init_models(engine)
        logger.info("%s starting base_url=%s", settings.app_name, settings.public_url)
        yield
        await engine.dispose()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.sessionmaker = build_sessionmaker(engine)
    app.state.identity_provider = identity_provider or OIDCProvider(settings)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="boxcheckr_session",
        max_age=settings.session_max_age_seconds,
        same_site="lax",
        https_only=settings.secure_cookies,
    )

    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    @app.exception_handler(BoxcheckrError)
    async def _boxcheckr_error_handler(request: Request, exc: BoxcheckrError):
        if isinstance(exc, AuthenticationError) and not _wants_json(request):
            return RedirectResponse(url="/auth/login", status_code=303)
        return _error_response(request, exc.status_code, exc.message)

    @app.exception_handler(SQLAlchemyError)
    async def _storage_error_handler(request: Request, exc: SQLAlchemyError):
        # Storage details stay in the server log.
        logger.exception("storage error on %s %s", request.method, request.url.path)
        return _error_response(request, 500, "Internal server error")

    @app.exception_handler(Exception)
    async def _unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return _error_response(request, 500, "Internal server error")

    app.include_router(web_router)
    app.include_router(admin_router)
    app.include_router(api_router, prefix="/api")

    return app
