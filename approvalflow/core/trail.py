# Trail Reporter
# Chronological view of an instance's finished and open tasks

import logging
from typing import List, Optional

from approvalflow.engine.facade import EngineFacade
from approvalflow.engine.queries import HistoricTaskQuery, SortOrder
from approvalflow.models import HistoricTaskInstance, TrailReport
from .resolver import TaskResolver

logger = logging.getLogger(__name__)


class TrailReporter:
    """Read-only reports over history and open tasks."""

    def __init__(self, engine: EngineFacade, resolver: Optional[TaskResolver] = None):
        self._engine = engine
        self._resolver = resolver or TaskResolver(engine)

    def history_of(self, instance_id: str) -> List[HistoricTaskInstance]:
        """Historic tasks of an instance, oldest first."""
        return self._engine.query_historic_tasks(
            HistoricTaskQuery(instance_id=instance_id, order_by_create_time=SortOrder.ASC)
        )

    def report(self, instance_id: str) -> TrailReport:
        return TrailReport(
            instance_id=instance_id,
            history=self.history_of(instance_id),
            current=self._resolver.current_tasks(instance_id),
        )

    def log_current_tasks(self, instance_id: str) -> None:
        for task in self._resolver.current_tasks(instance_id):
            logger.info(f"Task ID({task.id}), name({task.name}), assignee({task.assignee})")

    def log_history(self, instance_id: str) -> None:
        for task in self.history_of(instance_id):
            logger.info(f"Task ID({task.id}), name({task.name}), approver({task.assignee})")

    def log_report(self, instance_id: str) -> TrailReport:
        """Write the report to the log and return it."""
        report = self.report(instance_id)
        logger.info(f"============ Process instance ({instance_id}) ============")
        self.log_history(instance_id)
        self.log_current_tasks(instance_id)
        logger.info("=" * 55)
        return report
