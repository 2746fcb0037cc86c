import logging
from dataclasses import asdict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from leadmarket.api.routes import billing, health, jobs, leads, proposals, tokens, webhooks
from leadmarket.core.config import get_settings
from leadmarket.core.errors import MarketplaceError
from leadmarket.core.logging_config import sanitize_log_data, setup_logging

logger = logging.getLogger(__name__)


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(f"Starting with settings: {sanitize_log_data(asdict(settings))}")

    app = FastAPI(title="Leadmarket API")

    # ✅ CORS: only the frontend calls us from a browser
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            settings.frontend_url,
            "http://localhost:3000",
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # ============================================
    # ✅ ERROR HANDLERS
    # ============================================

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": exc.code},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Ein unerwarteter Fehler ist aufgetreten.", "error": "internal_error"},
        )

    # ============================================
    # ✅ REGISTER ALL ROUTERS
    # ============================================

    app.include_router(webhooks.router)
    app.include_router(tokens.router)
    app.include_router(leads.router)
    app.include_router(proposals.router)
    app.include_router(billing.router)
    app.include_router(jobs.router)
    app.include_router(health.router)

    @app.get("/")
    def root():
        return {"status": "Leadmarket API running"}

    return app


app = create_app()
