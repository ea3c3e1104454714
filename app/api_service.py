from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.errors import install_request_handling
from config.settings import settings
from jobs.scheduler import start_scheduler, stop_scheduler
from ops.structured_logger import setup_logging

from app.routers.admin import router as admin_router
from app.routers.admin_content import router as admin_content_router
from app.routers.admin_email import router as admin_email_router
from app.routers.catalog import router as catalog_router
from app.routers.content import router as content_router
from app.routers.health import router as health_router
from app.routers.price_alerts import router as price_alerts_router
from app.routers.prices import router as prices_router
from app.routers.subscriptions import router as subscriptions_router

setup_logging()

log = logging.getLogger("medprice.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()


app = FastAPI(title="MedPrice API", version="1.0.0", lifespan=lifespan)
install_request_handling(app, log)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",") if o.strip()],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(health_router, tags=["health"])
app.include_router(catalog_router, prefix="/api", tags=["catalog"])
app.include_router(prices_router, prefix="/api", tags=["prices"])
app.include_router(price_alerts_router, prefix="/api", tags=["price-alerts"])
app.include_router(subscriptions_router, prefix="/api", tags=["subscriptions"])
app.include_router(content_router, prefix="/api", tags=["content"])
app.include_router(admin_router, prefix="/admin", tags=["admin"])
app.include_router(admin_content_router, prefix="/admin", tags=["admin"])
app.include_router(admin_email_router, prefix="/admin", tags=["admin"])
