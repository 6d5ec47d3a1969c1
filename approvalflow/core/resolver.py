# Task Resolver
# Finds the current task(s) and the latest instance through the engine facade

import logging
from typing import List, Optional

from approvalflow.engine.facade import EngineFacade
from approvalflow.engine.queries import InstanceQuery, SortOrder, TaskQuery
from approvalflow.models import ProcessInstance, Task

logger = logging.getLogger(__name__)


class TaskResolver:
    """
    Read-only lookups of open tasks and running instances.

    When an instance has several open tasks, the most recently created one
    is "the" current task.
    """

    def __init__(self, engine: EngineFacade):
        self._engine = engine

    def last_task(self, instance_id: str) -> Optional[Task]:
        """
        Get the most recently created open task of an instance.

        Args:
            instance_id: Process instance ID

        Returns:
            The task, or None if the instance has no open task
        """
        tasks = self._engine.query_tasks(
            TaskQuery(instance_id=instance_id, order_by_create_time=SortOrder.DESC)
        )
        if not tasks:
            return None
        return tasks[0]

    def current_tasks(self, instance_id: str) -> List[Task]:
        """All open tasks of an instance, in engine-default order."""
        return self._engine.query_tasks(TaskQuery(instance_id=instance_id))

    def current_task_by_name(self, instance_id: str, name: Optional[str]) -> Optional[Task]:
        """
        Get an open task of an instance by name.

        Args:
            instance_id: Process instance ID
            name: Task name, compared case-sensitively

        Returns:
            The first open task with that name, or None
        """
        if not name:
            return None
        for task in self.current_tasks(instance_id):
            if task.name == name:
                return task
        return None

    def is_current_task(self, instance_id: str, name: Optional[str]) -> bool:
        return self.current_task_by_name(instance_id, name) is not None

    def last_process_instance(self, definition_key: str) -> Optional[ProcessInstance]:
        """
        Get the active instance of a definition with the highest id.

        Args:
            definition_key: Process definition key

        Returns:
            The instance, or None if the definition has no active instance
        """
        instances = self._engine.query_instances(
            InstanceQuery(definition_key=definition_key, active=True, order_by_id=SortOrder.DESC)
        )
        if not instances:
            logger.debug(f"No active instance of {definition_key}")
            return None
        return instances[0]
