"""Base service class with automatic execution tracking and error handling."""
from abc import ABC
from datetime import datetime
from typing import Optional, Dict, Any, List
import traceback
from contextlib import contextmanager

from src.repositories.base_repository import BaseRepository
from src.repositories.service_run_repository import ServiceRunRepository
from src.utils.logger import logger


class BaseService(ABC):
    """
    Base class for all services.
    Provides automatic execution tracking and error handling.

    Long-running or operator-triggered methods (refresh runs, queue
    reconciliation, cleanup) wrap their body in track_execution so every
    run leaves a ServiceRun row behind.
    """

    def __init__(self, service_run_repo: Optional[ServiceRunRepository] = None):
        self.service_run_repo = service_run_repo or ServiceRunRepository()
        self.service_name = self.__class__.__name__

    @contextmanager
    def track_execution(
        self,
        method_name: str,
        user_id: Optional[str] = None,
        triggered_by: str = "system",
        input_params: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        """
        Context manager to track service method execution.

        Usage:
            with self.track_execution("refresh_all_expiring", triggered_by="admin") as run_id:
                result = self.do_work()
                self.set_result_summary(run_id, {"refreshed": 3})
                return result

        Args:
            method_name: Name of the method being executed
            user_id: User who triggered the execution (optional)
            triggered_by: How it was triggered ('admin', 'system', 'scheduler', 'cli')
            input_params: Parameters passed to the method
            metadata: Additional context

        Yields:
            run_id: ID of the service run record
        """
        run_id = self.service_run_repo.create_run(
            service_name=self.service_name,
            method_name=method_name,
            user_id=str(user_id) if user_id else None,
            triggered_by=triggered_by,
            input_params=input_params,
            context_metadata=metadata,
        )

        started_at = datetime.utcnow()

        try:
            logger.info(f"[{self.service_name}.{method_name}] Starting execution (run_id: {run_id})")

            yield run_id

            duration_ms = int((datetime.utcnow() - started_at).total_seconds() * 1000)
            self.service_run_repo.complete_run(run_id=run_id, success=True, duration_ms=duration_ms)

            logger.info(f"[{self.service_name}.{method_name}] Completed successfully ({duration_ms}ms)")

        except Exception as e:
            duration_ms = int((datetime.utcnow() - started_at).total_seconds() * 1000)

            self.service_run_repo.fail_run(
                run_id=run_id,
                error_type=type(e).__name__,
                error_message=str(e),
                stack_trace=traceback.format_exc(),
                duration_ms=duration_ms,
            )

            logger.error(
                f"[{self.service_name}.{method_name}] Failed after {duration_ms}ms: {e}", exc_info=True
            )

            raise

    def set_result_summary(self, run_id: str, summary: Dict[str, Any]):
        """
        Update the result summary for a service run.

        Args:
            run_id: Service run ID (from track_execution)
            summary: Dictionary of results (e.g., {"refreshed": 10, "failed": 2})
        """
        self.service_run_repo.set_result_summary(run_id, summary)

    def _repositories(self) -> List[BaseRepository]:
        return [value for value in vars(self).values() if isinstance(value, BaseRepository)]

    def cleanup_transactions(self):
        """End open read transactions on every repository this service holds."""
        for repo in self._repositories():
            repo.end_read_transaction()

    def close(self):
        """Release the database sessions this service holds."""
        for repo in self._repositories():
            repo.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
