from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.models import JobSetting

JOB_SEED_DATA: list[dict[str, Any]] = [
    {
        "name": "monthly_tasks",
        "schedule_cron": "0 6 15 * *",
        "routines": ["check_missing", "check_sponsorship", "check_billing"],
        "description": "Provider sync and PRO users without subscription (15th of the month)",
    },
    {
        "name": "weekly_tasks",
        "schedule_cron": "0 20 * * 3",
        "routines": ["check_non_active", "count_subscriptions"],
        "description": "Dangling and non-active subscriptions (Wednesday evening)",
    },
    {
        "name": "weekend_maintenance",
        "schedule_cron": "0 4 * * 6",
        "routines": ["check_non_active", "count_subscriptions"],
        "description": "Weekend maintenance pass over non-active subscriptions",
    },
    {
        "name": "daily_tasks",
        "schedule_cron": "0 2 * * *",
        "routines": ["check_expiring"],
        "description": "Close subscriptions expiring today",
    },
]


def seed_jobs(db: Session) -> int:
    existing_by_name = {row.name: row for row in db.query(JobSetting).all()}
    inserted = 0
    for item in JOB_SEED_DATA:
        row = existing_by_name.get(item["name"])
        if row is None:
            db.add(
                JobSetting(
                    name=item["name"],
                    routines=list(item["routines"]),
                    is_enabled=True,
                    schedule_cron=item["schedule_cron"],
                    config={"description": item["description"]},
                )
            )
            inserted += 1
        else:
            row.schedule_cron = row.schedule_cron or item["schedule_cron"]
            row.routines = row.routines or list(item["routines"])
            current_cfg = dict(row.config or {})
            if not current_cfg.get("description"):
                current_cfg["description"] = item["description"]
            row.config = current_cfg

    db.commit()
    return inserted
