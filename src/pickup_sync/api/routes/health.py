"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/router", status_code=status.HTTP_200_OK)
def health_router() -> dict:
    """Check that the routing service answers with the configured key."""
    from ...services.routing.router_client import check_health

    try:
        return {"service": "router", "healthy": check_health()}
    except Exception as e:
        return {"service": "router", "healthy": False, "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def health_database() -> dict:
    """Check database connection and the sync tables."""
    from ...persistence.database import check_database_connection

    result = check_database_connection()
    if not result["configured"]:
        result["message"] = "Supabase not configured. Set PICKUP_SUPABASE_URL and PICKUP_SUPABASE_KEY environment variables."
    elif result["connected"]:
        result["message"] = "Database connected."
    else:
        result["message"] = f"Database connection error: {result.get('error')}"
    return result
