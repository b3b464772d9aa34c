"""Service run repository - execution records for tracked service methods."""
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import update

from src.models.service_run import ServiceRun
from src.repositories.base_repository import BaseRepository


class ServiceRunRepository(BaseRepository):
    """
    Writes one row per tracked call (token refresh runs, reconciliation,
    scheduled-post sync, job cleanup) and reads back recent failures for
    the health check.

    Finishing a run that no longer exists is a no-op.
    """

    def get_by_id(self, run_id: str) -> Optional[ServiceRun]:
        result = self.db.query(ServiceRun).filter(ServiceRun.id == run_id).first()
        self.end_read_transaction()
        return result

    def create_run(
        self,
        service_name: str,
        method_name: str,
        user_id: Optional[str] = None,
        triggered_by: str = "system",
        input_params: Optional[dict] = None,
        context_metadata: Optional[dict] = None,
    ) -> str:
        """Insert a running record and return its id."""
        run = ServiceRun(
            service_name=service_name,
            method_name=method_name,
            user_id=user_id,
            triggered_by=triggered_by,
            input_params=input_params,
            context_metadata=context_metadata,
        )
        self.db.add(run)
        self.commit()
        return str(run.id)

    def _update_run(self, run_id: str, **values) -> bool:
        result = self.db.execute(update(ServiceRun).where(ServiceRun.id == run_id).values(**values))
        self.commit()
        return result.rowcount == 1

    def complete_run(
        self,
        run_id: str,
        success: bool,
        duration_ms: int,
        result_summary: Optional[dict] = None,
    ) -> bool:
        # A summary recorded mid-run is kept unless a new one is passed
        values = {
            "status": "completed",
            "success": success,
            "duration_ms": duration_ms,
            "completed_at": datetime.utcnow(),
        }
        if result_summary is not None:
            values["result_summary"] = result_summary
        return self._update_run(run_id, **values)

    def fail_run(
        self,
        run_id: str,
        error_type: str,
        error_message: str,
        stack_trace: str,
        duration_ms: int,
    ) -> bool:
        return self._update_run(
            run_id,
            status="failed",
            success=False,
            duration_ms=duration_ms,
            completed_at=datetime.utcnow(),
            error_type=error_type,
            error_message=error_message,
            stack_trace=stack_trace,
        )

    def set_result_summary(self, run_id: str, summary: dict) -> bool:
        return self._update_run(run_id, result_summary=summary)

    def get_failed_runs(self, since_hours: int = 24, limit: int = 50) -> List[ServiceRun]:
        """Failed runs started within the window, newest first."""
        since = datetime.utcnow() - timedelta(hours=since_hours)
        result = (
            self.db.query(ServiceRun)
            .filter(ServiceRun.status == "failed", ServiceRun.started_at >= since)
            .order_by(ServiceRun.started_at.desc())
            .limit(limit)
            .all()
        )
        self.end_read_transaction()
        return result
