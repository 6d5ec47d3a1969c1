# Task Repository for the reference engine
# Handles open user tasks, their identity links and task-local variables

import logging
from typing import Any, Dict, List, Optional, Sequence, TYPE_CHECKING

from rdflib import Literal, RDF, URIRef

from approvalflow.config import CANDIDATE_LINK_TYPE
from approvalflow.models import IdentityLink, Task
from .base import BaseStorageService, TASK, INST, id_sort_key, now_iso
from .variables import read_variables, remove_variables, write_variables

if TYPE_CHECKING:
    from rdflib import Graph

logger = logging.getLogger(__name__)


class TaskRepository:
    """
    Repository for open user tasks.

    Handles:
    - Creating tasks when a token reaches a user task node
    - Claiming tasks (setting the assignee)
    - Identity links, kept in creation order
    - Task-local variables
    - Removing tasks once they complete or their instance is deleted

    Tasks are stored in the tasks_graph with:
    - Task metadata (name, activity, timestamps)
    - Assignment info (assignee, identity links)
    - Link to the owning instance
    """

    def __init__(self, base_storage: BaseStorageService):
        """
        Initialize the task repository.

        Args:
            base_storage: The base storage service providing graph access
        """
        self._storage = base_storage

    @property
    def _graph(self) -> "Graph":
        """Get the tasks graph."""
        return self._storage.tasks_graph

    def create(
        self,
        instance_id: str,
        definition_key: str,
        activity_id: str,
        name: str,
        assignee: Optional[str] = None,
        candidate_users: Optional[Sequence[str]] = None,
    ) -> Task:
        """
        Create a new user task.

        Args:
            instance_id: ID of the owning process instance
            definition_key: Key of the instance's definition
            activity_id: BPMN element id of the user task node
            name: Task name
            assignee: Optional direct assignee
            candidate_users: Optional candidate user IDs, in declaration order

        Returns:
            The created task
        """
        task_id = self._storage.next_id()
        task_uri = TASK[task_id]

        self._graph.add((task_uri, RDF.type, TASK.UserTask))
        self._graph.add((task_uri, TASK.instance, INST[instance_id]))
        self._graph.add((task_uri, TASK.definitionKey, Literal(definition_key)))
        self._graph.add((task_uri, TASK.activity, Literal(activity_id)))
        self._graph.add((task_uri, TASK.name, Literal(name)))
        self._graph.add((task_uri, TASK.createdAt, Literal(now_iso())))

        if assignee:
            self._graph.add((task_uri, TASK.assignee, Literal(assignee)))

        for position, user in enumerate(candidate_users or []):
            self._add_identity_link(task_uri, task_id, position, CANDIDATE_LINK_TYPE, user)

        self._storage.save_tasks()

        logger.info(f"Created task {task_id} ({name}) for instance {instance_id}")

        return self.get(task_id)

    def _add_identity_link(
        self,
        task_uri: URIRef,
        task_id: str,
        position: int,
        link_type: str,
        user_id: Optional[str],
    ) -> None:
        link_uri = TASK[f"{task_id}_link{position}"]
        self._graph.add((task_uri, TASK.identityLink, link_uri))
        self._graph.add((link_uri, TASK.linkType, Literal(link_type)))
        self._graph.add((link_uri, TASK.position, Literal(position)))
        if user_id is not None:
            self._graph.add((link_uri, TASK.userId, Literal(user_id)))

    def get(self, task_id: str) -> Optional[Task]:
        """
        Get an open task by ID.

        Args:
            task_id: The task ID

        Returns:
            The task, or None if not found
        """
        task_uri = TASK[task_id]

        if (task_uri, RDF.type, TASK.UserTask) not in self._graph:
            return None

        instance_uri = self._graph.value(task_uri, TASK.instance)
        definition_key = self._graph.value(task_uri, TASK.definitionKey)
        activity = self._graph.value(task_uri, TASK.activity)
        name = self._graph.value(task_uri, TASK.name)
        assignee = self._graph.value(task_uri, TASK.assignee)
        created_at = self._graph.value(task_uri, TASK.createdAt)
        claimed_at = self._graph.value(task_uri, TASK.claimedAt)

        return Task(
            id=task_id,
            name=str(name) if name else "User Task",
            instance_id=str(instance_uri)[len(str(INST)):],
            definition_key=str(definition_key) if definition_key else None,
            activity_id=str(activity) if activity else None,
            assignee=str(assignee) if assignee else None,
            created_at=str(created_at),
            claimed_at=str(claimed_at) if claimed_at else None,
        )

    def exists(self, task_id: str) -> bool:
        """Check if a task is open."""
        return (TASK[task_id], RDF.type, TASK.UserTask) in self._graph

    def list(
        self,
        task_id: Optional[str] = None,
        instance_id: Optional[str] = None,
        definition_key: Optional[str] = None,
        name: Optional[str] = None,
        candidate_or_assigned: Optional[str] = None,
    ) -> List[Task]:
        """
        List open tasks with optional filtering.

        Args:
            task_id: Filter by task ID
            instance_id: Filter by owning instance
            definition_key: Filter by definition key
            name: Filter by task name
            candidate_or_assigned: Only tasks this user is assignee or candidate of

        Returns:
            Matching tasks in id order, which is also creation order
        """
        tasks = []
        if task_id is not None:
            task_uris = [TASK[task_id]]
        else:
            task_uris = list(self._graph.subjects(RDF.type, TASK.UserTask))

        for task_uri in task_uris:
            task = self.get(str(task_uri)[len(str(TASK)):])

            if not task:
                continue
            if instance_id is not None and task.instance_id != instance_id:
                continue
            if definition_key is not None and task.definition_key != definition_key:
                continue
            if name is not None and task.name != name:
                continue
            if candidate_or_assigned is not None and not self._is_candidate_or_assignee(
                task, candidate_or_assigned
            ):
                continue

            tasks.append(task)

        return sorted(tasks, key=lambda task: id_sort_key(task.id))

    def _is_candidate_or_assignee(self, task: Task, user_id: str) -> bool:
        if task.assignee == user_id:
            return True
        return any(
            link.type == CANDIDATE_LINK_TYPE and link.user_id == user_id
            for link in self.identity_links(task.id)
        )

    def identity_links(self, task_id: str) -> List[IdentityLink]:
        """
        Identity links of a task in the order they were declared.

        Args:
            task_id: The task ID

        Returns:
            Identity links, empty for an unknown task
        """
        task_uri = TASK[task_id]
        links = []
        for link_uri in self._graph.objects(task_uri, TASK.identityLink):
            position = self._graph.value(link_uri, TASK.position)
            link_type = self._graph.value(link_uri, TASK.linkType)
            user_id = self._graph.value(link_uri, TASK.userId)
            links.append(
                (
                    int(position) if position is not None else 0,
                    IdentityLink(
                        type=str(link_type),
                        user_id=str(user_id) if user_id is not None else None,
                        task_id=task_id,
                    ),
                )
            )
        return [link for _, link in sorted(links, key=lambda item: item[0])]

    def claim(self, task_id: str, user_id: str) -> Optional[Task]:
        """
        Claim a task for a user.

        The previous assignee, if any, is replaced.

        Args:
            task_id: The task ID
            user_id: The user claiming the task

        Returns:
            Updated task, or None if not found
        """
        task_uri = TASK[task_id]

        if (task_uri, RDF.type, TASK.UserTask) not in self._graph:
            return None

        self._graph.set((task_uri, TASK.assignee, Literal(user_id)))
        self._graph.set((task_uri, TASK.claimedAt, Literal(now_iso())))
        self._storage.save_tasks()

        logger.info(f"Task {task_id} claimed by user {user_id}")

        return self.get(task_id)

    def set_local_variables(self, task_id: str, literals: Dict[str, Literal]) -> None:
        """Upsert encoded task-local variables."""
        write_variables(self._graph, TASK[task_id], task_id, literals)
        self._storage.save_tasks()

    def get_local_variables(self, task_id: str) -> Dict[str, Any]:
        """Get task-local variables."""
        return read_variables(self._graph, TASK[task_id])

    def remove(self, task_id: str) -> None:
        """Remove an open task with its identity links and local variables."""
        task_uri = TASK[task_id]
        for link_uri in list(self._graph.objects(task_uri, TASK.identityLink)):
            self._graph.remove((link_uri, None, None))
        remove_variables(self._graph, task_uri)
        self._graph.remove((task_uri, None, None))
        self._storage.save_tasks()

        logger.debug(f"Removed open task {task_id}")

    def count(self, instance_id: Optional[str] = None) -> int:
        """Count open tasks, optionally for one instance."""
        if instance_id is None:
            return len(list(self._graph.subjects(RDF.type, TASK.UserTask)))
        return len(list(self._graph.subjects(TASK.instance, INST[instance_id])))
