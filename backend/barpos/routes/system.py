# backend/barpos/routes/system.py
"""
System health endpoint.

Reports database reachability plus a few counts that tell an operator
whether the event is set up to sell (active events, stock locations,
configured inventory).
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Event, InventoryRecord, SessionToken, StockLocation, User
from barpos.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "active_sessions": active_sessions,
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


def check_event_setup() -> dict:
    """Degraded when nothing could be sold right now."""
    start_time = time.time()
    try:
        active_events = db.session.query(Event).filter(Event.is_active.is_(True)).count()
        active_locations = db.session.query(StockLocation).filter(StockLocation.is_active.is_(True)).count()
        records = db.session.query(InventoryRecord).count()

        elapsed_ms = (time.time() - start_time) * 1000
        details = {
            "active_events": active_events,
            "active_locations": active_locations,
            "inventory_records": records,
            "inventory_enforcement": bool(current_app.config.get("INVENTORY_ENFORCEMENT", True)),
        }

        if active_events == 0:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "No active events",
                "details": details,
            }

        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Event setup health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Event setup check error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (still operational)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    event_health = check_event_setup()

    all_checks = [database_health, event_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "event_setup": event_health,
        }
    }

    return response, http_status
