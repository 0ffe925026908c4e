"""
Base Routine Class - foundation for every reconciliation routine.
Each routine is one step of a scheduled job and receives the run context.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.clock import as_utc
from app.models import RoutineLog
from app.reconciliation.context import ReconciliationContext
from app.schemas.subscription import Subscription
from app.schemas.user import UserData

logger = logging.getLogger(__name__)


class BaseRoutine(ABC):
    """Base class for all reconciliation routines"""

    name: str = ""
    description: str = ""

    def __init__(self, db: Optional[Session] = None):
        self.db = db

    def _log(self, context: ReconciliationContext, action: str, status: str, message: str,
             error_details: Optional[str] = None,
             execution_time_ms: Optional[int] = None,
             metadata: Optional[Dict[str, Any]] = None):
        """Persist routine activity; without a session only the process log is written."""
        if self.db is None:
            return
        try:
            log = RoutineLog(
                job_name=context.job_name,
                routine_name=self.name,
                action=action,
                status=status,
                message=message,
                error_details=error_details,
                execution_time_ms=execution_time_ms,
                meta=metadata or {},
            )
            self.db.add(log)
            self.db.commit()
        except Exception as e:
            logger.error(f"Error logging for routine {self.name}: {str(e)}")
            self.db.rollback()

    @staticmethod
    def _resolve_user(context: ReconciliationContext, subscription: Subscription) -> Optional[UserData]:
        return context.users.get_by_id(subscription.user_id)

    @staticmethod
    def _age_days(context: ReconciliationContext, subscription: Subscription) -> Optional[float]:
        if subscription.date_created is None:
            return None
        return (context.now - as_utc(subscription.date_created)).total_seconds() / 86400

    @abstractmethod
    async def execute(self, context: ReconciliationContext) -> Dict[str, Any]:
        """
        Main execution method - must be implemented by each routine
        Returns: Dict with 'success' bool and 'data' dict
        """

    async def run(self, context: ReconciliationContext) -> Dict[str, Any]:
        """
        Wrapper that times the routine, records the outcome and contains
        phase-level failures so the remaining routines of the job still run.
        """
        start_time = datetime.now(timezone.utc)

        try:
            logger.info(f"Starting routine {self.name}")
            result = await self.execute(context)
            execution_time = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)

            self._log(
                context,
                action="execute",
                status="success",
                message="Routine completed successfully",
                execution_time_ms=execution_time,
                metadata=result.get("data", {}),
            )
            logger.info(f"Routine {self.name} completed in {execution_time}ms: {result.get('data', {})}")
            return result

        except Exception as e:
            execution_time = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)

            self._log(
                context,
                action="execute",
                status="error",
                message=f"Routine failed: {str(e)}",
                error_details=repr(e),
                execution_time_ms=execution_time,
            )
            logger.exception(f"Routine {self.name} failed: {str(e)}")

            return {
                "success": False,
                "error": str(e),
                "message": f"Routine {self.name} failed",
            }
