from __future__ import annotations

import logging
import sys

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pythonjsonlogger import jsonlogger
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .api import routes_events, routes_feedback, routes_profile, routes_users
from .auth.routes_auth import router as auth_router
from .auth.seed import seed_superadmin
from .config import settings
from .database import init_db
from .rate_limit import (
    RateLimitRejected,
    build_rate_limiters,
    limiter,
    rate_limit_rejected_handler,
)

# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------

def _configure_logging() -> None:
    """JSON lines on stdout when log_format=json (default), plain text otherwise."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        ))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    root.handlers = [handler]

_configure_logging()

# Initialise database tables and the first superadmin on startup
init_db()
seed_superadmin()

app = FastAPI(
    title="Exhibit API",
    version=__version__,
    description=(
        "Membership back end for the exhibit site: registration, sign-in, "
        "email verification and password reset, events, feedback, and "
        "user/admin management."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# Rate limiting: per-identity TTL counters on credential endpoints,
# slowapi on ordinary writes
app.state.rate_limiters = build_rate_limiters(settings)
app.add_exception_handler(RateLimitRejected, rate_limit_rejected_handler)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(routes_users.router)
app.include_router(routes_profile.router)
app.include_router(routes_events.router)
app.include_router(routes_feedback.router)


@app.get("/", tags=["meta"])
def root() -> dict:
    return {"status": "ok", "service": "exhibit-api", "version": __version__}


@app.get("/health", tags=["meta"])
def health() -> dict:
    return {"status": "healthy"}


@app.get("/healthz", tags=["meta"])
def healthz() -> dict:
    """Lightweight health check for load balancer probes."""
    return {"status": "ok"}
