# storefront/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from storefront.app.core.logging import setup_logging
from storefront.app.core.config import settings

from storefront.app.api.routes_health import router as health_router
from storefront.app.api.routes_metrics import router as metrics_router
from storefront.routes.api_products import router as products_router
from storefront.routes.api_cart import router as cart_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Reference storefront API: the product feed and the remote cart endpoints
    the cart engine syncs against, plus health and metrics.
    """
    setup_logging(settings.log_level, settings.log_format, service=settings.service_name)

    app = FastAPI(
        title=settings.service_name or "Storefront",
        version=settings.version or "0.1.0",
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
    )

    # --- Global JSON error handler: unexpected 500s come back as JSON ---
    @app.exception_handler(Exception)
    async def _unhandled_exc_to_json(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "detail": str(exc),
                "path": str(request.url),
                "method": request.method,
            },
        )

    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins or ["*"],
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods or ["*"],
        allow_headers=settings.cors_allow_headers or ["*"],
    )

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(products_router)
    app.include_router(cart_router)

    # Friendly root
    @app.get("/")
    def root():
        return {
            "service": settings.service_name,
            "version": settings.version,
            "environment": settings.environment,
            "docs": "/docs",
            "openapi": "/openapi.json",
            "tips": {
                "health": "/api/health",
                "metrics": "/api/metrics",
                "products": "GET /api/products?page=1",
                "view_cart": "GET /api/view_cart",
                "replace_cart": "PUT /api/cart",
            },
        }

    return app


app = create_app()
