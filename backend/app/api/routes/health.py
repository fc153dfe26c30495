from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from app.core.config import Settings, get_settings
from app.db.bootstrap import REQUIRED_COLUMNS
from app.db.session import engine
from app.models.period import Program

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def database_report() -> dict:
    report: dict = {"ok": True, "schema_ok": True, "missing_tables": [], "missing_columns": {}, "error": None}
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            inspector = inspect(connection)
            table_names = set(inspector.get_table_names())
            for table_name, columns in REQUIRED_COLUMNS.items():
                if table_name not in table_names:
                    report["missing_tables"].append(table_name)
                    continue
                existing = {item["name"] for item in inspector.get_columns(table_name)}
                missing = sorted(columns - existing)
                if missing:
                    report["missing_columns"][table_name] = missing
    except Exception as exc:  # pragma: no cover - environment dependent
        report["ok"] = False
        report["error"] = str(exc)
    report["schema_ok"] = not report["missing_tables"] and not report["missing_columns"]
    return report


def policy_report(settings: Settings) -> dict:
    """Programs without base hours cannot be staffed; every engine call for them fails."""
    missing = sorted(program.value for program in Program if program.value not in settings.period_base_hours)
    return {"ok": not missing, "programs_without_base_hours": missing}


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": _now()}


@router.get("/health/ready")
def health_ready(settings: Settings = Depends(get_settings)) -> JSONResponse:
    database = database_report()
    policy = policy_report(settings)
    ready = database["ok"] and database["schema_ok"] and policy["ok"]
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": _now(),
        "database": database,
        "assignment_policy": policy,
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
