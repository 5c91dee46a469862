# backend/shopledger/routes/system.py
"""
System health and version endpoints.

/health answers as long as the process is up; /ready also needs the
database to answer a ping.
"""

import os
import time
from flask import Blueprint, current_app

from ..extensions import database
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

_STARTED_AT = time.time()


def _uptime() -> float:
    return round(time.time() - _STARTED_AT, 2)


@system_bp.get("/health")
def health():
    """Liveness: 200 while the process runs."""
    return {
        "status": "healthy",
        "timestamp": to_utc_z(utcnow()),
        "uptime": _uptime(),
        "environment": os.environ.get("FLASK_ENV", "development"),
    }, 200


@system_bp.get("/ready")
def ready():
    """
    Readiness: pings the database.

    Returns:
    - 200: database reachable
    - 503: ping failed (health_status() included for diagnosis)
    """
    try:
        ok = database.ping()
        status = database.health_status()
    except Exception:
        current_app.logger.exception("Readiness check failed")
        return {
            "status": "not_ready",
            "message": "Service unavailable",
            "timestamp": to_utc_z(utcnow()),
        }, 503

    if not ok:
        return {
            "status": "not_ready",
            "message": "Database connection failed",
            "timestamp": to_utc_z(utcnow()),
            "database": status,
        }, 503

    return {
        "status": "ready",
        "timestamp": to_utc_z(utcnow()),
        "database": {"status": "connected", **status},
        "uptime": _uptime(),
    }, 200


@system_bp.get("/version")
def version():
    return {
        "name": "shopledger",
        "version": current_app.config.get("APP_VERSION", "0.1.0"),
        "git_sha": os.environ.get("GIT_SHA"),
    }, 200
