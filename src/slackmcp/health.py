"""Health and readiness endpoints for container orchestration.

- ``GET /health`` -- Liveness probe.  Returns 200 if the process is alive.
- ``GET /ready``  -- Readiness probe.  Returns 200 only when the identifier
  cache holds a principal snapshot **and** a channel snapshot.  Returns 503
  with per-check details otherwise.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from slackmcp.domain.types import IdentifierKind


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*.

    Args:
        app: The FastAPI application instance.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe -- always returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness probe -- checks both identifier cache snapshots."""
        services: dict[str, Any] = request.app.state.services
        checks: dict[str, str] = {}

        cache = services.get("cache")
        for kind in IdentifierKind:
            if cache is not None and cache.has_snapshot(kind):
                checks[f"{kind.value}_snapshot"] = "ok"
            else:
                checks[f"{kind.value}_snapshot"] = "fail"

        all_ok = all(v == "ok" for v in checks.values())
        status = "ready" if all_ok else "not_ready"
        code = 200 if all_ok else 503

        return JSONResponse(content={"status": status, "checks": checks}, status_code=code)
