"""
Jobs API Routes
Inspect and trigger reconciliation jobs
"""
from contextlib import nullcontext
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import JobSetting, RoutineLog
from app.routines.registry import get_routine_class
from app.services.job_runner import run_job

router = APIRouter()


def _serialize_job(job: JobSetting) -> Dict[str, Any]:
    return {
        "name": job.name,
        "enabled": job.is_enabled,
        "schedule": job.schedule_cron,
        "routines": job.routines or [],
        "description": (job.config or {}).get("description"),
        "last_run": job.last_run_at.isoformat() if job.last_run_at else None,
        "next_run": job.next_run_at.isoformat() if job.next_run_at else None,
    }


@router.get("/")
async def list_jobs(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    """List configured reconciliation jobs."""
    jobs = db.query(JobSetting).order_by(JobSetting.name.asc()).all()
    return [_serialize_job(job) for job in jobs]


@router.get("/logs")
async def recent_routine_logs(limit: int = 100, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    """Recent routine execution logs"""
    logs = db.query(RoutineLog).order_by(RoutineLog.created_at.desc()).limit(min(limit, 1000)).all()
    return [
        {
            "id": log.id,
            "job_name": log.job_name,
            "routine_name": log.routine_name,
            "action": log.action,
            "status": log.status,
            "message": log.message,
            "execution_time_ms": log.execution_time_ms,
            "metadata": log.meta or {},
            "created_at": log.created_at.isoformat() if log.created_at else None,
        }
        for log in logs
    ]


@router.post("/{job_name}/run")
async def run_job_now(job_name: str, request: Request, db: Session = Depends(get_db)) -> Dict[str, Any]:
    """Execute a job immediately."""
    setting = db.query(JobSetting).filter(JobSetting.name == job_name).first()
    if not setting:
        raise HTTPException(status_code=404, detail="Job not found")
    if not setting.is_enabled:
        raise HTTPException(status_code=400, detail="Job is disabled")

    unknown = [name for name in (setting.routines or []) if get_routine_class(name) is None]
    if unknown:
        raise HTTPException(status_code=501, detail=f"Routines not registered: {', '.join(unknown)}")

    scheduler = getattr(request.app.state, "job_scheduler", None)
    claim = scheduler.claim(job_name) if scheduler is not None else nullcontext(True)
    with claim as claimed:
        if not claimed:
            raise HTTPException(status_code=409, detail="Job is already running")
        results = await run_job(db, setting)
    return {
        "job": job_name,
        "success": all(result.get("success") for result in results.values()),
        "results": results,
    }
