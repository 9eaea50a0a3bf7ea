from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.requests import Request
from starlette.responses import JSONResponse

from ...deps import get_db_session
from ....core.config import get_settings
from ....db import check_database_health

router = APIRouter(tags=["ops"])


def _sweeper_status(request: Request) -> dict:
    settings = get_settings()
    runner = getattr(request.app.state, "sla_sweeper", None)
    return {
        "enabled": settings.sla_sweep_enabled,
        "running": bool(runner is not None and runner.is_alive()),
        "interval_sec": settings.sla_sweep_interval_sec,
    }


@router.get("/health")
def health(request: Request, session: Session = Depends(get_db_session)) -> JSONResponse:
    # Touch the session so an ORM roundtrip is covered, not just the raw engine
    try:
        session.execute(text("SELECT 1"))
        orm_ok = True
    except Exception as exc:  # noqa: BLE001
        orm_ok = False
        orm_details = str(exc)
    else:
        orm_details = "ok"

    db = check_database_health()
    sweeper = _sweeper_status(request)
    # Enabled but not running means reminders have stopped
    sweeper_ok = not sweeper["enabled"] or sweeper["running"]
    overall_ok = db["ok"] and orm_ok and sweeper_ok
    settings = get_settings()
    return JSONResponse(
        {
            "status": "ok" if overall_ok else "degraded",
            "version": settings.app_version,
            "db": db,
            "orm": {"ok": orm_ok, "details": orm_details},
            "sla_sweeper": sweeper,
        },
        status_code=200 if overall_ok else 503,
    )
