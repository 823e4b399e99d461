from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from labo.api.routes import admin, auth, billing, health
from labo.core.config import settings
from labo.core.logging_setup import logger
from labo.db.session import init_db


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    init_db()
    yield


def _normalize_origin(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().rstrip("/")
    return cleaned or None


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.project_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    origins: list[str] = []
    for item in settings.allowed_origins + [settings.public_app_url]:
        normalized = _normalize_origin(item)
        if normalized and normalized not in origins:
            origins.append(normalized)

    logger.info(f"CORS configured with origins: {origins}")

    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("Rejected malformed request %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    application.include_router(health.router, prefix="/health")
    application.include_router(auth.router, prefix=settings.api_v1_str)
    application.include_router(billing.router, prefix=settings.api_v1_str)
    application.include_router(admin.router, prefix=settings.api_v1_str)

    @application.get("/")
    def root():
        return {"service": settings.project_name}

    logger.info("Labo billing API initialised")
    return application


app = create_app()
