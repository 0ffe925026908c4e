"""
Runs a job: builds one reconciliation context and executes the job's
routines in order against it.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from croniter import croniter
from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.core.clock import now_utc
from app.core.exceptions import IntegrationError
from app.integrations.github import GitHubSponsorsClient
from app.integrations.paypal import PayPalClient
from app.models import JobSetting
from app.reconciliation.context import ReconciliationContext
from app.routines.registry import get_routine_class
from app.services.subscription_store import SubscriptionStore
from app.services.user_store import UserStore

logger = logging.getLogger(__name__)


def build_context(
    db: Session,
    job_name: Optional[str] = None,
    settings: Settings = default_settings,
) -> ReconciliationContext:
    billing = None
    sponsorship = None
    try:
        billing = PayPalClient() if settings.paypal_enabled else None
    except IntegrationError as exc:
        logger.warning("PayPal client unavailable: %s", exc)
    try:
        sponsorship = GitHubSponsorsClient() if settings.github_enabled else None
    except IntegrationError as exc:
        logger.warning("GitHub client unavailable: %s", exc)

    return ReconciliationContext(
        subscriptions=SubscriptionStore(db, dangling_pending_days=settings.dangling_pending_days),
        users=UserStore(db),
        settings=settings,
        billing=billing,
        sponsorship=sponsorship,
        job_name=job_name,
    )


async def close_context(context: ReconciliationContext) -> None:
    for client in (context.billing, context.sponsorship):
        if client is not None:
            await client.close()


async def run_routines(
    context: ReconciliationContext,
    routine_names: Iterable[str],
    db: Optional[Session] = None,
) -> Dict[str, Dict[str, Any]]:
    """Run routines sequentially; a failing routine never stops the next one."""
    results: Dict[str, Dict[str, Any]] = {}
    for name in routine_names:
        routine_class = get_routine_class(name)
        if routine_class is None:
            logger.error("Routine %s is not registered", name)
            results[name] = {"success": False, "error": f"Routine {name} is not registered"}
            continue
        results[name] = await routine_class(db=db).run(context)
    return results


async def run_job(db: Session, setting: JobSetting) -> Dict[str, Dict[str, Any]]:
    context = build_context(db, job_name=setting.name)
    try:
        results = await run_routines(context, setting.routines or [], db=db)
    finally:
        await close_context(context)

    setting.last_run_at = now_utc()
    setting.next_run_at = compute_next_run(setting.schedule_cron, setting.last_run_at)
    db.commit()
    return results


def compute_next_run(schedule_cron: str | None, from_dt: datetime) -> datetime | None:
    if not schedule_cron:
        return None
    try:
        return croniter(schedule_cron, from_dt).get_next(datetime)
    except (ValueError, KeyError) as exc:
        logger.error("Invalid cron expression %r: %s", schedule_cron, exc)
        return None
