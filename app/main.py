"""
Main FastAPI application for the Poster Checkout API.
Serves poster generation, Placid/M-Pesa/Paystack webhooks, maintenance switches, health and metrics.
"""
import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.core.config import settings
from app.core.errors import register_error_handlers
from app.core.logging import configure_logging
from app.api.routes import generate, health, mpesa, paystack, placid_callback, system_settings
from app.utils.metrics import router as metrics_router


configure_logging()
logger = logging.getLogger("http")

app = FastAPI(
    title="Poster Checkout API",
    description="Poster rendering via Placid with M-Pesa and Paystack checkout",
    version="1.0.0",
)

register_error_handlers(app)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get(settings.request_id_header) or uuid4().hex
    request.state.request_id = request_id
    start = time.perf_counter()
    response = await call_next(request)
    response.headers[settings.request_id_header] = request_id
    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "status_code": response.status_code,
            "latency_ms": round((time.perf_counter() - start) * 1000, 1),
        },
    )
    return response


# CORS
origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if not origins:
    origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded layer images; Placid fetches them from storage_public_url
app.mount("/assets", StaticFiles(directory=settings.storage_base_path, check_dir=False), name="assets")

# Routers
app.include_router(health.router, tags=["health"])
app.include_router(generate.router)
app.include_router(placid_callback.router)
app.include_router(mpesa.router)
app.include_router(paystack.router)
app.include_router(system_settings.router)
app.include_router(metrics_router)
