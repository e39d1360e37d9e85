"""FastAPI application for the LIHTC compliance service."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .core.config import settings
from .core.errors import ComplianceError
from .routers import compliance as compliance_router
from .routers import income as income_router
from .routers import verification as verification_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="LIHTC Compliance API", version="0.1.0")

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(compliance_router.router, prefix="/api", tags=["compliance"])
app.include_router(verification_router.router, prefix="/api", tags=["verification"])
app.include_router(income_router.router, prefix="/api", tags=["income"])


@app.exception_handler(ComplianceError)
async def compliance_error_handler(request: Request, exc: ComplianceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_detail())


@app.get("/api/health", tags=["meta"])
async def health() -> dict[str, str]:
    """Simple liveness probe."""

    return {"status": "ok"}


@app.head("/api/health", tags=["meta"])
async def health_head() -> Response:
    """Allow HEAD for uptime monitors that only need the status code."""

    return Response(status_code=200)
