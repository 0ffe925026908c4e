"""
Run one reconciliation job (or a list of routines) from the command line.

Usage:
  python scripts/run_job.py weekly_tasks
  python scripts/run_job.py --routines check_missing count_subscriptions
"""
from __future__ import annotations

import argparse
import asyncio
import json

from app.database import SessionLocal, init_db
from app.models import JobSetting
from app.services.job_runner import build_context, close_context, run_job, run_routines


async def _run(job_name: str | None, routines: list[str]) -> dict:
    db = SessionLocal()
    try:
        if routines:
            context = build_context(db, job_name="manual")
            try:
                return await run_routines(context, routines, db=db)
            finally:
                await close_context(context)

        setting = db.query(JobSetting).filter(JobSetting.name == job_name).first()
        if setting is None:
            raise SystemExit(f"job {job_name!r} not found")
        return await run_job(db, setting)
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("job", nargs="?", help="job name from job_settings")
    parser.add_argument("--routines", nargs="+", default=[], help="run these routines instead of a job")
    args = parser.parse_args()
    if not args.job and not args.routines:
        parser.error("give a job name or --routines")

    init_db()
    results = asyncio.run(_run(args.job, args.routines))
    print(json.dumps(results, indent=2, default=str))
    if not all(result.get("success") for result in results.values()):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
