import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from breakfast_api.core.config import settings
from breakfast_api.core.database import init_db
from breakfast_api.core.errors import register_exception_handlers
from breakfast_api.core.log_config import configure_logging
from breakfast_api.routes.categories import router as categories_router
from breakfast_api.routes.credit import router as credit_router
from breakfast_api.routes.health import router as health_router
from breakfast_api.routes.orders import router as orders_router
from breakfast_api.routes.products import router as products_router
from breakfast_api.routes.realtime import router as realtime_router
from breakfast_api.routes.restock import router as restock_router
from breakfast_api.routes.status_history import router as status_history_router


logger = logging.getLogger("breakfast_api.main")


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Breakfast Factory API", version="0.1.0")

    origins = settings.cors_origins
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def request_timeout(request: Request, call_next):
        # A 504 does not undo work the handler already finished; payments are
        # made retry-safe with the Idempotency-Key header
        try:
            return await asyncio.wait_for(call_next(request), timeout=settings.request_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("request timed out %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                content={"message": "Request timed out"},
            )

    register_exception_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(orders_router, tags=["orders"])
    app.include_router(realtime_router, tags=["realtime"])
    app.include_router(credit_router, prefix="/credit", tags=["credit"])
    app.include_router(restock_router, prefix="/restock", tags=["restock"])
    app.include_router(products_router, prefix="/products", tags=["products"])
    app.include_router(categories_router, prefix="/categories", tags=["categories"])
    app.include_router(status_history_router, prefix="/status-history", tags=["status-history"])

    return app


app = create_app()

# Only create tables automatically in development
if settings.env == "dev":
    try:
        init_db()
    except OperationalError:
        logger.warning("database not reachable at startup; tables not created", exc_info=True)
