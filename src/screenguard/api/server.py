"""FastAPI server for ScreenGuard."""
from datetime import datetime
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..database.repository import TrackerStore
from ..exceptions import (
    NotFoundError, ScreenGuardError, StateConflictError, StorageError, ValidationError,
)
from ..services.focus_sessions import FocusSessionManager
from ..services.progressive_limits import ProgressiveLimitEngine
from ..services.restrictions import RestrictionManager
from ..utils.clock import format_minute, parse_minute
from ..utils.helpers import minutes_to_millis

# Global instances (set by the main app)
store: Optional[TrackerStore] = None
restriction_service: Optional[RestrictionManager] = None
limits_service: Optional[ProgressiveLimitEngine] = None
focus_service: Optional[FocusSessionManager] = None

app = FastAPI(
    title="ScreenGuard API",
    description="Usage limits, time restrictions and focus sessions",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

HHMM = r"^([01]\d|2[0-3]):[0-5]\d$"


# Pydantic models
class UsageCreate(BaseModel):
    package_name: str
    start_time: datetime
    end_time: datetime


class RestrictionCreate(BaseModel):
    name: str
    description: str = ""
    start_time: str = Field(pattern=HHMM)  # HH:MM
    end_time: str = Field(pattern=HHMM)
    blocked_packages: List[str] = []  # empty blocks every app
    active_days: List[int]  # 0=Sunday .. 6=Saturday
    allow_emergency_apps: bool = True
    show_notifications: bool = True


class EnabledUpdate(BaseModel):
    enabled: bool


class ProgressiveLimitCreate(BaseModel):
    package_name: str
    target_minutes: int
    average_usage_minutes: Optional[int] = None  # read from tracked usage when omitted
    reduction_percentage: Optional[int] = None


class FocusSessionCreate(BaseModel):
    duration_minutes: int
    blocked_packages: List[str] = []


class FocusSessionComplete(BaseModel):
    was_successful: bool
    interruption_count: int = 0


# Error mapping
_STATUS_CODES = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (StateConflictError, 409),
    (StorageError, 503),
)


@app.exception_handler(ScreenGuardError)
def handle_screenguard_error(request: Request, exc: ScreenGuardError):
    status = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content={"detail": exc.message, "hint": exc.hint})


def _require(service, name: str):
    if service is None:
        raise HTTPException(status_code=503, detail=f"{name} service not available")
    return service


# Serializers
def _restriction_dict(r) -> dict:
    return {
        "id": r.id,
        "type": r.restriction_type,
        "name": r.name,
        "description": r.description,
        "start_time": format_minute(r.start_minute),
        "end_time": format_minute(r.end_minute),
        "blocked_packages": sorted(r.blocked_packages),
        "active_days": sorted(r.active_days),
        "enabled": r.is_enabled,
        "allow_emergency_apps": r.allow_emergency_apps,
        "show_notifications": r.show_notifications,
    }


def _limit_dict(limit) -> dict:
    return {
        "id": limit.id,
        "package_name": limit.package_name,
        "original_limit_millis": limit.original_limit_millis,
        "target_limit_millis": limit.target_limit_millis,
        "current_limit_millis": limit.current_limit_millis,
        "reduction_percentage": limit.reduction_percentage,
        "start_date": str(limit.start_date),
        "next_reduction_date": str(limit.next_reduction_date),
        "active": limit.is_active,
        "progress_percentage": limit.progress_percentage,
    }


def _milestone_dict(m) -> dict:
    return {
        "id": m.id,
        "limit_id": m.limit_id,
        "percentage": m.percentage,
        "title": m.reward_title,
        "description": m.reward_description,
        "achieved": m.is_achieved,
        "achieved_date": str(m.achieved_date) if m.achieved_date else None,
        "celebration_shown": m.celebration_shown,
    }


def _session_dict(s) -> dict:
    return {
        "id": s.id,
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat() if s.end_time else None,
        "target_duration_millis": s.target_duration_millis,
        "actual_duration_millis": s.actual_duration_millis,
        "was_successful": s.was_successful,
        "interruption_count": s.interruption_count,
        "blocked_packages": sorted(s.blocked_packages),
    }


# Health check
@app.get("/")
def root():
    """Health check endpoint."""
    return {
        "status": "online",
        "app": "ScreenGuard API",
        "version": "1.0.0"
    }


# Usage tracker endpoint
@app.post("/usage")
def record_usage(usage: UsageCreate):
    """Record a foreground interval reported by the usage tracker."""
    if usage.end_time < usage.start_time:
        raise HTTPException(status_code=400, detail="end_time is before start_time")
    record_id = _require(store, "Storage").record_app_usage(
        usage.package_name, usage.start_time, usage.end_time
    )
    return {"status": "success", "id": record_id}


# Blocking check
@app.get("/check-blocked/{package_name}")
def check_blocked(package_name: str):
    """Check whether an app is blocked right now, and why."""
    if focus_service and focus_service.is_app_blocked(package_name):
        return {"blocked": True, "reason": "focus_session",
                "message": "This app is blocked during your focus session"}
    if restriction_service:
        restriction = restriction_service.blocking_restriction(package_name)
        if restriction is not None:
            message = f"Blocked by {restriction.name}"
            if restriction.start_minute != restriction.end_minute:
                message += f" until {format_minute(restriction.end_minute)}"
            return {"blocked": True, "reason": "time_restriction", "message": message}
    if limits_service and limits_service.is_over_limit(package_name):
        return {"blocked": True, "reason": "progressive_limit",
                "message": "Daily limit reached for this app"}
    return {"blocked": False}


# Time restriction endpoints
@app.get("/restrictions")
def list_restrictions():
    service = _require(restriction_service, "Restriction")
    return {"restrictions": [_restriction_dict(r) for r in service.list_all()]}


@app.post("/restrictions")
def create_restriction(restriction: RestrictionCreate):
    service = _require(restriction_service, "Restriction")
    restriction_id = service.create_custom(
        name=restriction.name,
        description=restriction.description,
        start_minute=parse_minute(restriction.start_time),
        end_minute=parse_minute(restriction.end_time),
        blocked_packages=restriction.blocked_packages,
        active_days=restriction.active_days,
        allow_emergency_apps=restriction.allow_emergency_apps,
        show_notifications=restriction.show_notifications,
    )
    return {"status": "success", "id": restriction_id}


@app.post("/restrictions/defaults")
def create_default_restrictions():
    created = _require(restriction_service, "Restriction").create_default_restrictions()
    return {"status": "success", "created": created}


@app.get("/restrictions/active")
def active_restrictions():
    service = _require(restriction_service, "Restriction")
    return {"restrictions": [_restriction_dict(r) for r in service.active_restrictions_at()]}


@app.put("/restrictions/{restriction_id}/enabled")
def set_restriction_enabled(restriction_id: int, update: EnabledUpdate):
    _require(restriction_service, "Restriction").set_enabled(restriction_id, update.enabled)
    return {"status": "success", "id": restriction_id, "enabled": update.enabled}


@app.delete("/restrictions/{restriction_id}")
def delete_restriction(restriction_id: int):
    _require(restriction_service, "Restriction").delete(restriction_id)
    return {"status": "success"}


# Progressive limit endpoints
@app.get("/limits/progressive")
def list_progressive_limits():
    service = _require(limits_service, "Progressive limit")
    return {"limits": [_limit_dict(limit) for limit in service.list_active()]}


@app.post("/limits/progressive")
def create_progressive_limit(req: ProgressiveLimitCreate):
    service = _require(limits_service, "Progressive limit")
    average = minutes_to_millis(req.average_usage_minutes) if req.average_usage_minutes is not None else None
    limit = service.create(
        req.package_name,
        minutes_to_millis(req.target_minutes),
        average_usage_millis_last_7_days=average,
        reduction_percentage=req.reduction_percentage,
    )
    return {"status": "success", "limit": _limit_dict(limit)}


@app.post("/limits/progressive/reduce")
def run_weekly_reductions():
    reduced = _require(limits_service, "Progressive limit").process_weekly_reductions()
    return {"status": "success", "reduced": [_limit_dict(limit) for limit in reduced]}


@app.get("/limits/progressive/milestones")
def uncelebrated_milestones():
    service = _require(limits_service, "Progressive limit")
    return {"milestones": [_milestone_dict(m) for m in service.uncelebrated_milestones()]}


@app.post("/limits/progressive/milestones/{milestone_id}/celebrated")
def mark_milestone_celebrated(milestone_id: int):
    _require(limits_service, "Progressive limit").mark_celebration_shown(milestone_id)
    return {"status": "success"}


@app.get("/limits/progressive/{limit_id}/milestones")
def limit_milestones(limit_id: int):
    service = _require(limits_service, "Progressive limit")
    return {"milestones": [_milestone_dict(m) for m in service.milestones_for(limit_id)]}


@app.delete("/limits/progressive/{package_name}")
def cancel_progressive_limit(package_name: str):
    cancelled = _require(limits_service, "Progressive limit").cancel(package_name)
    return {"status": "success", "cancelled": cancelled}


# Focus session endpoints
@app.post("/focus/start")
def start_focus_session(session_data: FocusSessionCreate):
    """Start a focus session."""
    service = _require(focus_service, "Focus")
    session_id = service.start(session_data.duration_minutes, session_data.blocked_packages)
    return {
        "status": "success",
        "session_id": session_id,
        "message": "Focus session started"
    }


@app.post("/focus/complete")
def complete_focus_session(request: FocusSessionComplete):
    """Complete the current focus session."""
    closed = _require(focus_service, "Focus").complete(request.was_successful, request.interruption_count)
    return {"status": "success", "session": _session_dict(closed)}


@app.post("/focus/cancel")
def cancel_focus_session():
    closed = _require(focus_service, "Focus").cancel()
    return {"status": "success", "session": _session_dict(closed)}


@app.get("/focus/status")
def get_focus_status():
    """Get current focus session status."""
    if not focus_service:
        return {"active": False}
    current = focus_service.current_session()
    return {
        "active": current is not None,
        "elapsed_millis": focus_service.elapsed_millis(),
        "session": _session_dict(current) if current else None,
    }


@app.get("/focus/stats")
def get_focus_stats(date: Optional[str] = None):
    """Get focus statistics for a day (default today)."""
    service = _require(focus_service, "Focus")
    target_date = None
    if date:
        try:
            target_date = datetime.strptime(date, "%Y-%m-%d").date()
        except ValueError:
            raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD")
    stats = service.stats(target_date)
    return {
        "date": str(target_date or service.clock.today()),
        "total_sessions": stats.total_sessions,
        "successful_sessions": stats.successful_sessions,
        "total_focus_millis": stats.total_focus_millis,
        "average_session_millis": stats.average_session_millis,
        "success_rate": stats.success_rate,
    }


def set_services(
    tracker_store: Optional[TrackerStore],
    restrictions: Optional[RestrictionManager],
    limits: Optional[ProgressiveLimitEngine],
    focus: Optional[FocusSessionManager],
):
    """Set global service instances."""
    global store, restriction_service, limits_service, focus_service
    store = tracker_store
    restriction_service = restrictions
    limits_service = limits
    focus_service = focus


def start(host: str = "127.0.0.1", port: int = 8765):
    """Start the API server."""
    import uvicorn
    uvicorn.run(app, host=host, port=port, log_level="info")
