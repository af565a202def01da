"""
Vehicle Inspection Engine — FastAPI Application Entry Point

GET  /v1/parameters                    → applicable checklist for a vehicle
/v1/inspections/...                    → inspection lifecycle, scoring, certificate
GET  /v1/certificates/verify/{number}  → public certificate verification
/v1/admin/...                          → catalog administration
GET  /health                           → health check
GET  /docs                             → OpenAPI / Swagger UI
"""
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from app.api.admin_endpoint import router as admin_router
from app.api.certificate_endpoint import router as certificate_router
from app.api.inspection_endpoint import router as inspection_router
from app.api.parameter_endpoint import router as parameter_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.services.event_publisher import stop_producer

configure_logging(get_settings())
logger = structlog.get_logger()

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(
        "inspection_engine_starting",
        env=settings.app_env,
        kafka_enabled=settings.kafka_enabled,
        auth_enabled=settings.auth_enabled,
        certificate_timezone=settings.certificate_timezone,
    )
    yield
    await stop_producer()
    logger.info("inspection_engine_shutting_down")


app = FastAPI(
    title="Vehicle Inspection Engine",
    description="Inspection checklist, risk scoring and certification for used-vehicle inspections",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Technician app (answers, photos) and admin panel (catalog edits)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # tighten in production
    allow_methods=["GET", "POST", "PUT", "PATCH"],
    allow_headers=["*"],
)

app.mount("/metrics", make_asgi_app())

app.include_router(parameter_router)
app.include_router(inspection_router)
app.include_router(certificate_router)
app.include_router(admin_router)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok", "service": get_settings().app_name, "version": VERSION}


@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": get_settings().app_name,
        "version": VERSION,
        "docs": "/docs",
        "parameters": "GET /v1/parameters?fuel_type=&transmission_type=",
        "verify": "GET /v1/certificates/verify/{certificate_number}",
    }
