from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import settings, DEFAULT_JWT_SECRET
from .core.logging import setup_logging
from .domain.errors import MosquitoAlertError, UnauthorizedError, ValidationError
from .infrastructure import models
from .infrastructure.database import engine
from .api import auth, reports, ai, admin

logger = logging.getLogger(__name__)


def validate_config():
    """Validate critical configuration settings on startup."""
    if settings.is_production and settings.JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "SECURITY ERROR: JWT_SECRET_KEY must be changed from default in production! "
            "Set a secure random string via environment variable."
        )

    if len(settings.JWT_SECRET_KEY) < 32:
        raise RuntimeError(
            f"SECURITY ERROR: JWT_SECRET_KEY must be at least 32 characters "
            f"(current: {len(settings.JWT_SECRET_KEY)} chars)"
        )

    if settings.CREATION_POLICY.lower() not in ("ai_gated", "manual_review"):
        raise RuntimeError(f"CREATION_POLICY must be ai_gated or manual_review, got {settings.CREATION_POLICY!r}")

    if settings.AI_FAILURE_POLICY.lower() not in ("reject", "provisional"):
        raise RuntimeError(f"AI_FAILURE_POLICY must be reject or provisional, got {settings.AI_FAILURE_POLICY!r}")

    if not settings.ROBOFLOW_API_KEY:
        logger.warning(
            f"ROBOFLOW_API_KEY is not set; every classification will use the "
            f"{settings.AI_FAILURE_POLICY} fallback"
        )

    if settings.is_production:
        localhost_origins = [o for o in settings.BACKEND_CORS_ORIGINS if "localhost" in o]
        if localhost_origins:
            logger.warning(
                f"WARNING: CORS origins contain localhost URLs in production: {localhost_origins}. "
                "Consider removing localhost from BACKEND_CORS_ORIGINS env var."
            )

    logger.info(
        f"Config validation passed. Production mode: {settings.is_production}, "
        f"creation policy: {settings.CREATION_POLICY}, AI failure policy: {settings.AI_FAILURE_POLICY}"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan events for startup and shutdown."""
    setup_logging()
    logger.info("Starting Mosquito Alert API...")

    validate_config()
    models.Base.metadata.create_all(bind=engine)

    yield

    logger.info("Shutting down Mosquito Alert API...")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(MosquitoAlertError)
async def domain_error_handler(request: Request, exc: MosquitoAlertError):
    body = {"message": exc.message}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/auth", tags=["authentication"])
app.include_router(reports.router, prefix=f"{settings.API_V1_STR}/reports", tags=["reports"])
app.include_router(ai.router, prefix=f"{settings.API_V1_STR}/ai", tags=["ai"])
app.include_router(admin.router, prefix=f"{settings.API_V1_STR}/admin", tags=["admin"])


@app.get("/health")
def health_check():
    return {"status": "healthy"}
