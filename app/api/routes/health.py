from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check. Never rate limited.

    Returns:
        dict: ``status`` plus whether the reclamation sweep is scheduled.
    """

    reclaimer = getattr(request.app.state, "reclaimer", None)
    return {
        "status": "ok",
        "reclaimer_running": bool(reclaimer and reclaimer.running),
    }
