# backend/comanda/routes/system.py
"""
System health and version endpoints.

Health covers the two things every PDV terminal depends on: the database
and the tab synchronization cadence.
"""

import sys
import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Company, Order
from comanda.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        company_count = db.session.query(Company).count()
        open_orders = db.session.query(Order).filter(Order.is_archived.is_(False)).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "companies": company_count,
                "open_orders": open_orders,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
        },
        "sync": {
            "poll_interval_seconds": current_app.config.get("POLL_INTERVAL_SECONDS"),
            "checkout_lock_timeout_seconds": current_app.config.get("CHECKOUT_LOCK_TIMEOUT_SECONDS"),
        },
    }

    return response, http_status


@system_bp.get("/version")
def version():
    """
    Non-sensitive deployment information. Does NOT expose secrets or paths.
    """
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "0.1.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
