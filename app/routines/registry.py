"""
Routine registry for job execution.
Maps routine names (as stored in job settings) to concrete routine classes.
"""
from typing import Dict, Type

from app.routines.base import BaseRoutine
from app.routines.check_billing import CheckBillingRoutine
from app.routines.check_expiring import CheckExpiringRoutine
from app.routines.check_missing import CheckMissingRoutine
from app.routines.check_non_active import CheckNonActiveRoutine
from app.routines.check_sponsorship import CheckSponsorshipRoutine
from app.routines.count_subscriptions import CountSubscriptionsRoutine


ROUTINE_CLASS_MAP: Dict[str, Type[BaseRoutine]] = {
    routine.name: routine
    for routine in (
        CheckBillingRoutine,
        CheckSponsorshipRoutine,
        CheckNonActiveRoutine,
        CheckMissingRoutine,
        CheckExpiringRoutine,
        CountSubscriptionsRoutine,
    )
}


def get_routine_class(name: str) -> Type[BaseRoutine] | None:
    """Return routine class by name or None if not found."""
    return ROUTINE_CLASS_MAP.get(name)
