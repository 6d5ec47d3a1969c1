# Instance Navigator
# Moves process instances forward and lists the instances awaiting a user

import logging
from typing import Any, Dict, List, Optional, Union

from approvalflow.engine.facade import EngineFacade
from approvalflow.engine.queries import InstanceQuery, SortOrder, TaskQuery
from approvalflow.errors import InvalidArgumentError, InvalidStateError
from approvalflow.models import ProcessInstance
from .authorization import AuthorizationEngine
from .resolver import TaskResolver
from .transitions import TaskTransitionController

logger = logging.getLogger(__name__)


def business_key_text(business_key: Optional[Union[str, int]]) -> Optional[str]:
    """Business keys may be given as integers; the engine stores text."""
    if business_key is None:
        return None
    return str(business_key)


class InstanceNavigator:
    """
    Advances instances through their tasks.

    Every process is assumed to open with a non-human "start" task, which
    start_and_advance completes without authorization.
    """

    def __init__(
        self,
        engine: EngineFacade,
        resolver: Optional[TaskResolver] = None,
        authorization: Optional[AuthorizationEngine] = None,
        transitions: Optional[TaskTransitionController] = None,
    ):
        self._engine = engine
        self._resolver = resolver or TaskResolver(engine)
        self._authorization = authorization or AuthorizationEngine(engine)
        self._transitions = transitions or TaskTransitionController(
            engine, self._authorization, self._resolver
        )

    def start_and_advance(
        self,
        definition_key: str,
        business_key: Optional[Union[str, int]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ProcessInstance:
        """
        Start an instance and complete its first task.

        Args:
            definition_key: Process definition key
            business_key: Optional business key
            variables: Optional instance variables

        Returns:
            The started instance

        Raises:
            InvalidStateError: If the started instance has no task to complete
        """
        instance = self._engine.start_instance(
            definition_key, business_key_text(business_key), variables
        )
        task = self._resolver.last_task(instance.id)
        if task is None:
            raise InvalidStateError(
                f"Process instance [{instance.id}] of {definition_key} has no task to complete "
                f"after start",
                instance_id=instance.id,
            )
        self._engine.complete(task.id)
        logger.info(f"Process instance [{instance.id}] started")
        return instance

    def advance(self, instance_id: str) -> None:
        """
        Complete the current task of an instance on behalf of its executor.

        An instance without open tasks is left alone.

        Raises:
            InvalidStateError: If the task has neither assignee nor candidate
        """
        task = self._resolver.last_task(instance_id)
        if task is None:
            logger.debug(f"Process instance [{instance_id}] has no open task")
            return

        executor = self._authorization.executor_of(task.id)
        if executor is None:
            raise InvalidStateError(
                f"Task [{task.id}] ({task.name}) has neither assignee nor candidate",
                instance_id=instance_id,
            )
        self._transitions.complete_with_check(executor, task.id)

    def pending_approvals(self, user_id: str) -> List[ProcessInstance]:
        """
        Running instances with a task the user may act on.

        Args:
            user_id: The user

        Returns:
            Instances ordered by id descending, empty if none
        """
        if not user_id:
            raise InvalidArgumentError("A user id is required to list pending approvals")

        tasks = self._engine.query_tasks(TaskQuery(candidate_or_assigned=user_id))
        instance_ids = {task.instance_id for task in tasks}
        if not instance_ids:
            return []

        return self._engine.query_instances(
            InstanceQuery(instance_ids=instance_ids, order_by_id=SortOrder.DESC)
        )
