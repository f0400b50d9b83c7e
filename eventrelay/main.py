import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from eventrelay.exceptions.handlers import (
    application_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from eventrelay.exceptions.errors import ApplicationException
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.exceptions import RequestValidationError
from eventrelay.core.config import settings
from eventrelay.database.base import Base
from eventrelay.database.connection import engine

from eventrelay.api.v1.routes import (
    health_router,
    event_router,
    destination_router,
    transformation_router,
    route_router,
    integration_router,
)
from eventrelay.middlewares.api_key_auth import ApiKeyAuthMiddleware, whitelisted_routes
from eventrelay.services.cache_service import cache_service
from eventrelay.services.destination_service import load_destinations_from_database
from eventrelay.services.event_router import event_router as router_service

from eventrelay.core.logger import get_logger

logger = get_logger("eventrelay")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Event relay is starting...")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Application database tables ensured.")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise e

    await cache_service.connect()

    results = await load_destinations_from_database()
    logger.info(f"Registered {results['success']} destinations ({results['failed']} failed)")

    try:
        await router_service.initialize()
    except Exception as e:
        # Routing initialises lazily on the first event instead
        logger.error(f"Event router not ready at startup: {e}")

    yield

    logger.info("Event relay is shutting down...")
    await cache_service.close()


app = FastAPI(
    title="Event Relay",
    version="1.0.0",
    lifespan=lifespan,
    description="""
    Event ingestion, routing and webhook forwarding.

    ## Authentication

    Send the shared API key in `X-API-Key` (or `Api-Key`, or `Authorization: Bearer <key>`).
    `/api/health` and signed provider webhooks under `/api/integrations/<provider>/webhook`
    are public.
    """,
    swagger_ui_parameters={
        "deepLinking": True,
        "displayRequestDuration": True,
        "persistAuthorization": settings.IS_DEVELOPMENT,
    },
)

app.add_middleware(
    ApiKeyAuthMiddleware,
    whitelisted_routes=whitelisted_routes
)

# Added last so it wraps auth and 401s still carry CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=not settings.CORS_ALLOW_ALL,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health_router, prefix="/api")
app.include_router(event_router, prefix="/api")
app.include_router(destination_router, prefix="/api")
app.include_router(transformation_router, prefix="/api")
app.include_router(route_router, prefix="/api")
app.include_router(integration_router, prefix="/api")


@app.get("/", include_in_schema=False)
async def root():
    return {
        "message": "Event Relay API",
        "docs": "/docs",
        "development_mode": settings.IS_DEVELOPMENT,
        "version": "1.0.0"
    }

# Exception handlers
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

if __name__ == "__main__":
    uvicorn.run(
        "eventrelay.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.IS_DEVELOPMENT,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30
    )
