from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prometheus_client import make_asgi_app

from locker.core.config import settings
from locker.api.v1 import router as api_v1
from locker.api.admin import router as admin_router
from locker.observability.tracing import setup_tracing, instrument_fastapi
from locker.core.logging import setup_logging, get_logger


setup_logging()
log = get_logger("locker.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.bind(
        env=settings.APP_ENV,
        version=settings.APP_VERSION,
        namespace=settings.LOCKER_NAMESPACE,
    ).info("startup")
    yield
    log.info("shutdown")


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION, lifespan=lifespan)

# API
app.include_router(api_v1, prefix="/v1")
app.include_router(admin_router)

# Metrics
app.mount("/metrics", make_asgi_app())

# Tracing is a no-op unless an OTLP endpoint is configured
if setup_tracing():
    instrument_fastapi(app)

if settings.APP_ENV == "dev":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
