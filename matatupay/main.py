"""
FastAPI application factory with New Relic APM, CORS, lifespan, domain error
mapping and all routers.
"""
import logging
import os

# New Relic must be initialized BEFORE any other imports that it instruments.
if os.getenv("NEW_RELIC_LICENSE_KEY"):
    import newrelic.agent
    newrelic.agent.initialize("newrelic.ini")

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from matatupay.config import get_settings
from matatupay.errors import MatatuPayError
from matatupay.redis_client import get_redis, close_redis
from matatupay.routers import alerts, matatus, payments, revenue, routes, trips, users

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

ROUTERS = (users, matatus, routes, trips, revenue, alerts, payments)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s [%s]", settings.app_name, settings.env)
    if not (settings.at_username and settings.at_api_key):
        logger.warning("Mobile money gateway credentials missing; payment initiation will fail with 502")
    await get_redis()
    yield
    await close_redis()
    logger.info("Shutdown complete")


async def domain_error_handler(request: Request, exc: MatatuPayError):
    logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s: %s", request.url, exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        description="Matatu fare collection, revenue sharing and mobile-money reconciliation",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(MatatuPayError, domain_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    # Liveness only (no auth, no dependencies touched)
    @application.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "service": settings.app_name}

    for module in ROUTERS:
        application.include_router(module.router)

    return application


app = create_app()
