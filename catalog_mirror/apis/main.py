"""
Catalog Mirror API - backend-for-frontend over the Shopify admin catalog
Serves the local product mirror, live stock and the price/stock update workflow
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..errors import CatalogError
from ..services import CatalogServices
from .products import router as products_router

API_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def create_app(services: CatalogServices) -> FastAPI:
    """Build the application around already-constructed services"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services.config.sync.on_startup:
            logger.info("Scheduling startup catalog sync")
            services.sync_runner.trigger()
        yield
        await services.close()

    app = FastAPI(
        title="Catalog Mirror API",
        description="Mirror of the Shopify product catalog with price updates and stock locking",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS for web frontends
    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CatalogError)
    async def catalog_error_handler(request: Request, exc: CatalogError):
        logger.warning(f"{request.method} {request.url.path} failed: {exc.error}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={"error": "validation_error", "message": "Invalid request", "errors": errors},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} raised {type(exc).__name__}")
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": "Unexpected server error"},
        )

    app.include_router(products_router, prefix="/api/products", tags=["Products"])

    @app.get("/")
    async def root():
        return {
            "message": "Catalog Mirror API",
            "endpoints": {
                "list_products": "/api/products?updatedOnly=&page=&limit=&q=",
                "get_product": "/api/products/{id}?includeStock=1",
                "inventory": "/api/products/{id}/inventory",
                "update_price": "PUT /api/products/{id}",
                "sync": "POST /api/products/sync",
            },
        }

    @app.get("/health")
    async def health_check():
        db_manager = services.db_manager
        return {
            "status": "healthy",
            "version": API_VERSION,
            "mongodb": db_manager.ping() if db_manager is not None else None,
            "location_configured": bool(services.config.shopify.location_id),
            "sync": services.sync_runner.status().to_dict(),
        }

    return app
