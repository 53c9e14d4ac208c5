"""Consently FastAPI application.

Entry point: uvicorn consently.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from consently.config import settings
from consently.exceptions import ConsentlyError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("app_startup", env=settings.APP_ENV)
    yield
    from consently.db.session import engine
    from consently.deps import _redis_pool

    if _redis_pool is not None:
        await _redis_pool.aclose()
    await engine.dispose()
    logger.info("app_shutdown")


app = FastAPI(
    title="Consently API",
    description="Consent evaluation, recording and analytics",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.APP_ENV == "development" else None,
    redoc_url="/redoc" if settings.APP_ENV == "development" else None,
)

# --- CORS ---
# Widgets post from arbitrary customer sites without cookies.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception handlers ---

@app.exception_handler(ConsentlyError)
async def consently_error_handler(request: Request, exc: ConsentlyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=exc.headers or None)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request",
            "code": "VALIDATION_ERROR",
            "details": [
                {
                    "loc": [str(part) for part in err.get("loc", ())],
                    "msg": err.get("msg", ""),
                    "type": err.get("type", ""),
                }
                for err in exc.errors()
            ],
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


# --- Routers ---

from consently.routers.consent import router as consent_router  # noqa: E402
from consently.routers.privacy_centre import router as privacy_centre_router  # noqa: E402
from consently.routers.widgets import router as widgets_router  # noqa: E402
from consently.routers.activities import router as activities_router  # noqa: E402
from consently.routers.analytics import router as analytics_router  # noqa: E402

app.include_router(consent_router, prefix="/api", tags=["consent"])
app.include_router(privacy_centre_router, prefix="/api", tags=["privacy-centre"])
app.include_router(widgets_router, prefix="/api", tags=["widgets"])
app.include_router(activities_router, prefix="/api", tags=["activities"])
app.include_router(analytics_router, prefix="/api", tags=["analytics"])


# --- Health check ---

@app.get("/api/health")
async def health_check():
    return {"status": "ok", "version": "0.1.0"}
