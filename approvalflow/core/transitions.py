# Task Transition Controller
# The only mutating entry points from the approval layer into the engine

import logging
from typing import Any, Dict, Optional

from approvalflow.config import DEFAULT_REJECT_REASON
from approvalflow.engine.facade import EngineFacade
from approvalflow.engine.queries import InstanceQuery
from approvalflow.errors import InvalidArgumentError, InvalidStateError, UnauthorizedError
from approvalflow.models import Task
from .authorization import AuthorizationEngine
from .resolver import TaskResolver

logger = logging.getLogger(__name__)


class TaskTransitionController:
    """
    Claims, completes and rejects tasks on behalf of users.

    complete_with_check and reject_task enforce the assignee-or-candidate
    rule; complete_task_by_name is the unchecked path for trusted callers.
    """

    def __init__(
        self,
        engine: EngineFacade,
        authorization: Optional[AuthorizationEngine] = None,
        resolver: Optional[TaskResolver] = None,
    ):
        self._engine = engine
        self._authorization = authorization or AuthorizationEngine(engine)
        self._resolver = resolver or TaskResolver(engine)

    def _authorize(self, user_id: Optional[str], task_id: str) -> Task:
        if not user_id:
            raise InvalidArgumentError("A user id is required to act on a task")
        task = self._authorization.require_task(task_id)
        if not self._authorization.can_act_on(user_id, task):
            logger.warning(f"User [{user_id}] may not act on task [{task_id}]")
            raise UnauthorizedError(user_id, task_id)
        return task

    def complete_with_check(
        self,
        user_id: str,
        task_id: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Complete a task after checking the user may act on it.

        Variables are written to the task's local scope before anything
        else, so a value the engine cannot store leaves the task untouched.
        The task is then claimed for the user unless they already are its
        assignee.

        Args:
            user_id: The acting user
            task_id: The task ID
            variables: Optional task-local variables

        Raises:
            InvalidArgumentError: If user_id is empty
            NotFoundError: If the task does not exist
            UnauthorizedError: If the user is neither assignee nor candidate
        """
        task = self._authorize(user_id, task_id)

        if variables:
            self._engine.set_local_variables(task_id, variables)
        if user_id != task.assignee:
            self._engine.claim(task_id, user_id)

        self._engine.complete(task_id)
        logger.info(f"Task [{task_id}] completed by [{user_id}]")

    def reject_task(
        self,
        task_id: str,
        user_id: str,
        reason: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Reject a task by deleting its whole process instance.

        The variables are written to the task's local scope and the task is
        claimed for the rejecting user so history records who rejected it.
        An instance that no longer exists is not an error. A failure after the
        first write is not rolled back.

        Args:
            task_id: The task ID
            user_id: The rejecting user
            reason: Deletion cause recorded on the instance
            variables: Optional task-local variables, e.g. an opinion

        Raises:
            InvalidArgumentError: If user_id is empty
            NotFoundError: If the task does not exist
            UnauthorizedError: If the user is neither assignee nor candidate
        """
        task = self._authorize(user_id, task_id)
        reason = reason or DEFAULT_REJECT_REASON

        try:
            if variables:
                self._engine.set_local_variables(task_id, variables)
            self._engine.claim(task_id, user_id)

            instances = self._engine.query_instances(InstanceQuery(instance_id=task.instance_id))
            if not instances:
                logger.info(
                    f"Process instance [{task.instance_id}] already gone; nothing to delete"
                )
                return
            self._engine.delete_instance(task.instance_id, reason)
        except Exception:
            logger.error(
                f"Rejecting task [{task_id}] of instance [{task.instance_id}] failed part way; "
                f"manual reconciliation required"
            )
            raise

        logger.info(f"Task [{task_id}] rejected by [{user_id}]: {reason}")

    def complete_task_by_name(self, instance_id: str, task_name: str) -> None:
        """
        Complete an open task of an instance by name, without authorization.

        Raises:
            InvalidStateError: If no open task of the instance has that name
        """
        task = self._resolver.current_task_by_name(instance_id, task_name)
        if task is None:
            raise InvalidStateError(
                f"Task ({task_name}) is not a current task of process instance ({instance_id})",
                instance_id=instance_id,
            )
        self._engine.complete(task.id)
        logger.info(f"Task [{task.id}] ({task_name}) of instance [{instance_id}] completed")
