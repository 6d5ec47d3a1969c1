# History Repository for the reference engine
# Records finished tasks, process instances and variable values

import logging
from typing import Dict, List, Optional, TYPE_CHECKING
from urllib.parse import quote

from rdflib import Literal, RDF, URIRef

from approvalflow.models import (
    HistoricProcessInstance,
    HistoricTaskInstance,
    HistoricVariable,
    ProcessInstance,
    Task,
)
from .base import BaseStorageService, HIST, id_sort_key, now_iso
from .queries import (
    HistoricInstanceQuery,
    HistoricTaskQuery,
    HistoricVariableQuery,
    SortOrder,
)
from .variables import from_literal

if TYPE_CHECKING:
    from rdflib import Graph

logger = logging.getLogger(__name__)


def _text(value) -> Optional[str]:
    return str(value) if value is not None else None


class HistoryRepository:
    """
    Repository for the engine's audit trail.

    History entries are never updated once an instance or task has ended:
    - HistoricTaskInstance: written when a task completes or is deleted
    - HistoricProcessInstance: written on start, closed on end or deletion
    - HistoricVariable: written whenever a variable is set, keyed by
      instance and, for task-local variables, by task

    All entries are stored in the history_graph and persisted to history.ttl.
    """

    def __init__(self, base_storage: BaseStorageService):
        """
        Initialize the history repository.

        Args:
            base_storage: The base storage service providing graph access
        """
        self._storage = base_storage

    @property
    def _graph(self) -> "Graph":
        """Get the history graph."""
        return self._storage.history_graph

    # ==================== Process Instances ====================

    def record_instance_start(self, instance: ProcessInstance) -> None:
        instance_uri = HIST[f"instance/{instance.id}"]
        self._graph.add((instance_uri, RDF.type, HIST.ProcessInstance))
        self._graph.add((instance_uri, HIST.instanceId, Literal(instance.id)))
        self._graph.add((instance_uri, HIST.definitionKey, Literal(instance.definition_key)))
        self._graph.add((instance_uri, HIST.startedAt, Literal(instance.started_at)))
        if instance.business_key is not None:
            self._graph.add((instance_uri, HIST.businessKey, Literal(instance.business_key)))
        self._storage.save_history()

    def record_instance_end(self, instance_id: str, delete_reason: Optional[str] = None) -> None:
        instance_uri = HIST[f"instance/{instance_id}"]
        self._graph.set((instance_uri, HIST.endedAt, Literal(now_iso())))
        if delete_reason is not None:
            self._graph.set((instance_uri, HIST.deleteReason, Literal(delete_reason)))
        self._storage.save_history()

        logger.debug(f"Recorded end of instance {instance_id}")

    def historic_instance(self, instance_uri: URIRef) -> HistoricProcessInstance:
        return HistoricProcessInstance(
            id=str(self._graph.value(instance_uri, HIST.instanceId)),
            definition_key=str(self._graph.value(instance_uri, HIST.definitionKey)),
            business_key=_text(self._graph.value(instance_uri, HIST.businessKey)),
            started_at=str(self._graph.value(instance_uri, HIST.startedAt)),
            ended_at=_text(self._graph.value(instance_uri, HIST.endedAt)),
            delete_reason=_text(self._graph.value(instance_uri, HIST.deleteReason)),
        )

    def historic_instances(self, query: HistoricInstanceQuery) -> List[HistoricProcessInstance]:
        """
        Query historic process instances.

        Args:
            query: Filter and ordering

        Returns:
            Matching instances; id order unless a start-time order is given
        """
        involved = None
        if query.involved_user is not None:
            involved = {
                task.instance_id
                for task in self.historic_tasks(HistoricTaskQuery(assignee=query.involved_user))
            }

        instances = []
        for instance_uri in self._graph.subjects(RDF.type, HIST.ProcessInstance):
            instance = self.historic_instance(instance_uri)
            if query.definition_key is not None and instance.definition_key != query.definition_key:
                continue
            if involved is not None and instance.id not in involved:
                continue
            if query.finished is not None and (instance.ended_at is not None) != query.finished:
                continue
            instances.append(instance)

        if query.order_by_start_time is None:
            return sorted(instances, key=lambda instance: id_sort_key(instance.id))
        return sorted(
            instances,
            key=lambda instance: (instance.started_at, id_sort_key(instance.id)),
            reverse=query.order_by_start_time == SortOrder.DESC,
        )

    # ==================== Tasks ====================

    def record_task(self, task: Task, delete_reason: Optional[str] = None) -> HistoricTaskInstance:
        """
        Record a task that has just completed or been deleted.

        Args:
            task: The task as it was when it ended
            delete_reason: Set when the task ended because its instance was deleted

        Returns:
            The historic task instance
        """
        task_uri = HIST[f"task/{task.id}"]
        ended_at = now_iso()

        self._graph.add((task_uri, RDF.type, HIST.TaskInstance))
        self._graph.add((task_uri, HIST.taskId, Literal(task.id)))
        self._graph.add((task_uri, HIST.instanceId, Literal(task.instance_id)))
        self._graph.add((task_uri, HIST.name, Literal(task.name)))
        self._graph.add((task_uri, HIST.createdAt, Literal(task.created_at)))
        self._graph.add((task_uri, HIST.endedAt, Literal(ended_at)))
        if task.activity_id:
            self._graph.add((task_uri, HIST.activity, Literal(task.activity_id)))
        if task.assignee:
            self._graph.add((task_uri, HIST.assignee, Literal(task.assignee)))
        if task.claimed_at:
            self._graph.add((task_uri, HIST.claimedAt, Literal(task.claimed_at)))
        if delete_reason is not None:
            self._graph.add((task_uri, HIST.deleteReason, Literal(delete_reason)))

        self._storage.save_history()

        logger.debug(f"Recorded historic task {task.id} of instance {task.instance_id}")
        return self.historic_task(task_uri)

    def historic_task(self, task_uri: URIRef) -> HistoricTaskInstance:
        return HistoricTaskInstance(
            id=str(self._graph.value(task_uri, HIST.taskId)),
            name=str(self._graph.value(task_uri, HIST.name)),
            instance_id=str(self._graph.value(task_uri, HIST.instanceId)),
            activity_id=_text(self._graph.value(task_uri, HIST.activity)),
            assignee=_text(self._graph.value(task_uri, HIST.assignee)),
            created_at=str(self._graph.value(task_uri, HIST.createdAt)),
            claimed_at=_text(self._graph.value(task_uri, HIST.claimedAt)),
            ended_at=_text(self._graph.value(task_uri, HIST.endedAt)),
            delete_reason=_text(self._graph.value(task_uri, HIST.deleteReason)),
        )

    def historic_tasks(self, query: HistoricTaskQuery) -> List[HistoricTaskInstance]:
        """
        Query historic task instances.

        Creation-time ordering breaks ties by task id, which follows
        creation order.
        """
        tasks = []
        for task_uri in self._graph.subjects(RDF.type, HIST.TaskInstance):
            task = self.historic_task(task_uri)
            if query.instance_id is not None and task.instance_id != query.instance_id:
                continue
            if query.task_id is not None and task.id != query.task_id:
                continue
            if query.assignee is not None and task.assignee != query.assignee:
                continue
            tasks.append(task)

        if query.order_by_create_time is None:
            return sorted(tasks, key=lambda task: id_sort_key(task.id))
        return sorted(
            tasks,
            key=lambda task: (task.created_at, id_sort_key(task.id)),
            reverse=query.order_by_create_time == SortOrder.DESC,
        )

    # ==================== Variables ====================

    def record_variables(
        self,
        instance_id: str,
        literals: Dict[str, Literal],
        task_id: Optional[str] = None,
    ) -> None:
        """
        Upsert historic variables for an instance or a task-local scope.

        Args:
            instance_id: Owning instance
            literals: Name to encoded value mapping
            task_id: Task for task-local variables, None for instance scope
        """
        scope = f"task/{task_id}" if task_id is not None else f"instance/{instance_id}"
        for name, literal in literals.items():
            var_uri = HIST[f"variable/{scope}/{quote(name, safe='')}"]
            self._graph.set((var_uri, RDF.type, HIST.Variable))
            self._graph.set((var_uri, HIST.name, Literal(name)))
            self._graph.set((var_uri, HIST.value, literal))
            self._graph.set((var_uri, HIST.instanceId, Literal(instance_id)))
            if task_id is not None:
                self._graph.set((var_uri, HIST.taskId, Literal(task_id)))
        self._storage.save_history()

    def historic_variables(self, query: HistoricVariableQuery) -> List[HistoricVariable]:
        """Query historic variables by task and/or instance."""
        variables = []
        for var_uri in self._graph.subjects(RDF.type, HIST.Variable):
            task_id = _text(self._graph.value(var_uri, HIST.taskId))
            instance_id = str(self._graph.value(var_uri, HIST.instanceId))
            if query.task_id is not None and task_id != query.task_id:
                continue
            if query.instance_id is not None and instance_id != query.instance_id:
                continue
            variables.append(
                HistoricVariable(
                    name=str(self._graph.value(var_uri, HIST.name)),
                    value=from_literal(self._graph.value(var_uri, HIST.value)),
                    instance_id=instance_id,
                    task_id=task_id,
                )
            )
        return variables
