import logging
import os

import sentry_sdk
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sqlalchemy import text

from .config import LOG_LEVEL
from .db import Base, engine, get_db
from .errors import StorybookError
from . import models  # noqa: F401 (register models)
from .routes import book_routes, generation_routes, proxy_routes, settings_routes

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# create tables at startup (simple approach for dev)
Base.metadata.create_all(bind=engine)

_SENTRY_DSN = os.getenv("SENTRY_DSN")
if _SENTRY_DSN:
    sentry_sdk.init(
        dsn=_SENTRY_DSN,
        environment=os.getenv("SENTRY_ENV", "local"),
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
        profiles_sample_rate=float(os.getenv("SENTRY_PROFILES_SAMPLE_RATE", "0.0")),
        integrations=[StarletteIntegration(), FastApiIntegration()],
    )

app = FastAPI(title="Storybook AI API")

# CORS: default to the local Vite dev server, configurable via env
_cors_env = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
if _cors_env:
    _origins = [o.strip() for o in _cors_env.split(",") if o.strip()]
else:
    _origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

app.include_router(book_routes.router)
app.include_router(generation_routes.router)
app.include_router(proxy_routes.router)
app.include_router(settings_routes.router)


@app.exception_handler(StorybookError)
def handle_storybook_error(request: Request, exc: StorybookError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": str(exc) or exc.__class__.__name__})


@app.get("/")
def read_root():
    return {"status": "ok", "message": "Backend is running!"}


@app.get("/health")
def health(db=Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "db": "connected"}
    except Exception as e:
        logger.warning(f"Health check DB probe failed: {e}")
        return {"status": "unhealthy", "error": str(e)}
