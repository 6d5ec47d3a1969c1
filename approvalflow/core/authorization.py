# Authorization Engine
# Decides who may act on a task and who is responsible for it

import logging
from typing import List, Optional, Sequence

from approvalflow.config import CANDIDATE_LINK_TYPE
from approvalflow.engine.facade import EngineFacade
from approvalflow.engine.queries import TaskQuery
from approvalflow.errors import NotFoundError
from approvalflow.models import Task

logger = logging.getLogger(__name__)


def resolve_executor(assignee: Optional[str], candidates: Sequence[str]) -> Optional[str]:
    """
    The single user responsible for a task.

    The assignee when set, otherwise the first candidate, otherwise None.
    """
    if assignee:
        return assignee
    if candidates:
        return candidates[0]
    return None


class AuthorizationEngine:
    """
    Authorization rules layered over the engine.

    A user may act on a task when they are its assignee or one of its
    candidates. The engine itself lets anyone holding a task id complete it.
    """

    def __init__(self, engine: EngineFacade):
        self._engine = engine

    def find_task(self, task_id: str) -> Optional[Task]:
        tasks = self._engine.query_tasks(TaskQuery(task_id=task_id))
        if not tasks:
            return None
        return tasks[0]

    def require_task(self, task_id: str) -> Task:
        """
        Get an open task or fail.

        Raises:
            NotFoundError: If the task does not exist
        """
        task = self.find_task(task_id)
        if task is None:
            raise NotFoundError(f"Task ({task_id}) does not exist", entity_id=task_id)
        return task

    def candidates(self, task_id: str) -> List[str]:
        """
        Candidate users of a task.

        Duplicates are collapsed; the remaining users keep the order in which
        the engine enumerates the links, so the first entry is well-defined.
        """
        candidates: List[str] = []
        for link in self._engine.query_identity_links(task_id):
            if link.type != CANDIDATE_LINK_TYPE or link.user_id is None:
                continue
            if link.user_id not in candidates:
                candidates.append(link.user_id)
        return candidates

    def can_act_on(self, user_id: Optional[str], task: Task) -> bool:
        """Whether a user may act on an already fetched task."""
        if not user_id:
            return False
        if task.assignee is not None and user_id == task.assignee:
            return True
        return user_id in self.candidates(task.id)

    def can_act(self, user_id: Optional[str], task_id: str) -> bool:
        """
        Whether a user may claim, complete or reject a task.

        Args:
            user_id: The user
            task_id: The task ID

        Returns:
            True if the user is the assignee or a candidate

        Raises:
            NotFoundError: If the task does not exist
        """
        return self.can_act_on(user_id, self.require_task(task_id))

    def executor_of(self, task_id: str) -> Optional[str]:
        """
        Get the user responsible for a task.

        Raises:
            NotFoundError: If the task does not exist
        """
        task = self.require_task(task_id)
        candidates = [] if task.assignee else self.candidates(task_id)
        return resolve_executor(task.assignee, candidates)
