import logging
import warnings
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from zona_fiscal.config import settings
from zona_fiscal.core.errors import register_error_handlers
from zona_fiscal.core.middleware import AccessLogMiddleware, RequestIDMiddleware
from zona_fiscal.core.rate_limit import RateLimitMiddleware
from zona_fiscal.dependencies import engine
from zona_fiscal.models import Base
from zona_fiscal.routers import admin_lgpd, auth, cron, lgpd

APP_VERSION = "0.1.0"
DEFAULT_SECRET_KEY = "change-me-in-production"

if settings.is_production and settings.secret_key == DEFAULT_SECRET_KEY:
    raise RuntimeError(
        "SECRET_KEY must be set to a secure random value in production. "
        "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
    )

if not settings.is_production and settings.secret_key == DEFAULT_SECRET_KEY:
    warnings.warn("SECRET_KEY is using default value. Set it for production.", stacklevel=1)

logger = logging.getLogger("zona_fiscal")

if settings.is_production and not settings.cron_secret:
    logger.warning("CRON_SECRET is not set; /cron endpoints are unauthenticated")


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Create database tables on startup if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables verified/created")
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=APP_VERSION,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Last added runs first: CORS, then request IDs, access log, rate limit
cors_kwargs = {
    "allow_origins": settings.cors_origins_list,
    "allow_credentials": True,
    "allow_methods": ["*"],
    "allow_headers": ["*"],
    "expose_headers": ["x-request-id"],
}
if settings.cors_allow_origin_regex:
    cors_kwargs["allow_origin_regex"] = settings.cors_allow_origin_regex
app.add_middleware(RateLimitMiddleware)
app.add_middleware(AccessLogMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(CORSMiddleware, **cors_kwargs)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(lgpd.router)
app.include_router(admin_lgpd.router)
app.include_router(cron.router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "app": settings.app_name, "version": APP_VERSION}
