"""
Main FastAPI application for the UGC Studio billing API.
Serves health, payment webhooks, video batches, credits, admin and metrics.
"""
import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ugcstudio.core.config import settings
from ugcstudio.core.errors import ServiceError
from ugcstudio.core.logging import configure_logging, request_id_var
from ugcstudio.api.routes import admin, batches, credits, health, webhooks
from ugcstudio.db.base import Base
from ugcstudio.db.session import engine
from ugcstudio.utils.metrics import router as metrics_router
import ugcstudio.models  # noqa: F401  registers tables on Base.metadata

logger = logging.getLogger("ugcstudio.http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="UGC Studio API",
    description="Credit ledger, payment webhooks and video batch creation",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or str(uuid4())
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    started = time.monotonic()
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers[settings.request_id_header] = request_id
    logger.info(
        "http_request",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": round((time.monotonic() - started) * 1000, 1),
        },
    )
    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Routers
app.include_router(health.router, tags=["health"])
app.include_router(webhooks.router)
app.include_router(batches.router)
app.include_router(credits.router)
app.include_router(admin.router)
app.include_router(metrics_router)
