"""MediRate API FastAPI application."""
import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .api import (
    access,
    billing,
    contact,
    documents,
    email_verification,
    excel_export,
    health,
    rate_developments,
    rates,
    subscription_users,
    templates,
    transferred,
    users,
    wire_transfers,
)
from .config.loader import Config, get_config
from .metrics import REQUEST_DURATION

logger = logging.getLogger(__name__)


def error_body(error, details=None) -> dict:
    return {"error": error, "details": details}


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, str):
        body = error_body(exc.detail)
    else:
        body = error_body("Request failed", jsonable_encoder(exc.detail))
    return JSONResponse(body, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(error_body("Invalid request", jsonable_encoder(exc.errors())), status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(error_body("Internal server error", str(exc)), status_code=500)


def create_app(config: Config = None) -> FastAPI:
    """Build the application with routers, middleware and error handlers."""
    config = config or get_config()

    app = FastAPI(
        title="MediRate API",
        description="Subscription, entitlement and document library services for MediRate",
        version=config.global_config.version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.middleware("http")
    async def record_request_duration(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        route = request.scope.get("route")
        REQUEST_DURATION.labels(
            method=request.method,
            route=getattr(route, "path", "unmatched"),
        ).observe(time.time() - start_time)
        return response

    for module in (
        health,
        access,
        users,
        subscription_users,
        wire_transfers,
        excel_export,
        templates,
        email_verification,
        documents,
        billing,
        rate_developments,
        rates,
        contact,
    ):
        app.include_router(module.router)
    app.include_router(transferred.router)
    app.include_router(transferred.users_router)

    if config.observability.metrics_enabled:
        @app.get("/metrics", include_in_schema=False)
        async def metrics():
            return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def run() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    config = get_config()
    logging.basicConfig(
        level=config.global_config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "medirate_api.main:create_app",
        factory=True,
        host=config.api.host,
        port=config.api.port,
        reload=config.api.reload,
        workers=config.api.workers,
    )


if __name__ == "__main__":
    run()
