# Process Engine for approvalflow
# Reference EngineFacade implementation over RDF graphs

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from rdflib import Literal, URIRef

from approvalflow.config import Settings
from approvalflow.errors import NotFoundError
from approvalflow.models import (
    Deployment,
    HistoricProcessInstance,
    HistoricTaskInstance,
    HistoricVariable,
    IdentityLink,
    ProcessInstance,
    Task,
)
from .base import BaseStorageService, BPMN, id_sort_key
from .definitions import DefinitionRepository, Resource, resolve_expression, split_users
from .facade import EngineFacade
from .history import HistoryRepository
from .instances import InstanceRepository
from .queries import (
    HistoricInstanceQuery,
    HistoricTaskQuery,
    HistoricVariableQuery,
    InstanceQuery,
    SortOrder,
    TaskQuery,
)
from .tasks import TaskRepository
from .variables import encode_variables

logger = logging.getLogger(__name__)


class ProcessEngine(BaseStorageService, EngineFacade):
    """
    RDF-backed workflow engine implementing the EngineFacade contract.

    Components:
    - DefinitionRepository: BPMN deployment and definition lookup
    - InstanceRepository: Running instances and instance variables
    - TaskRepository: Open user tasks, identity links, local variables
    - HistoryRepository: Historic tasks, instances and variables

    Execution is simple: tokens move along sequence flows from
    the start event, stop at user tasks, and an instance ends once it has no
    open task left. The engine performs no authorization checks.
    """

    def __init__(self, storage_path: Optional[str] = None, persist: bool = True):
        """
        Initialize the engine and its repositories.

        Args:
            storage_path: Directory for persisting data, None for in-memory
            persist: Whether graphs are written to disk after changes
        """
        super().__init__(storage_path, persist)

        self._definitions = DefinitionRepository(self)
        self._instances = InstanceRepository(self)
        self._tasks = TaskRepository(self)
        self._history = HistoryRepository(self)

        logger.info(f"ProcessEngine initialized with storage_path: {storage_path}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProcessEngine":
        return cls(storage_path=settings.storage_path, persist=settings.persist)

    # ==================== Component Access ====================

    @property
    def definitions(self) -> DefinitionRepository:
        return self._definitions

    @property
    def instances(self) -> InstanceRepository:
        return self._instances

    @property
    def tasks(self) -> TaskRepository:
        return self._tasks

    @property
    def history(self) -> HistoryRepository:
        return self._history

    # ==================== Queries ====================

    def query_tasks(self, query: TaskQuery) -> List[Task]:
        tasks = self._tasks.list(
            task_id=query.task_id,
            instance_id=query.instance_id,
            definition_key=query.definition_key,
            name=query.name,
            candidate_or_assigned=query.candidate_or_assigned,
        )
        if query.order_by_create_time is not None:
            tasks = sorted(
                tasks,
                key=lambda task: (task.created_at, id_sort_key(task.id)),
                reverse=query.order_by_create_time == SortOrder.DESC,
            )
        return tasks

    def query_instances(self, query: InstanceQuery) -> List[ProcessInstance]:
        # Running instances are never suspended here, so every one is active.
        instances = self._instances.list(
            instance_id=query.instance_id,
            instance_ids=query.instance_ids,
            definition_key=query.definition_key,
        )
        if query.order_by_id == SortOrder.DESC:
            instances.reverse()
        return instances

    def query_historic_tasks(self, query: HistoricTaskQuery) -> List[HistoricTaskInstance]:
        return self._history.historic_tasks(query)

    def query_historic_variables(self, query: HistoricVariableQuery) -> List[HistoricVariable]:
        return self._history.historic_variables(query)

    def query_historic_instances(
        self, query: HistoricInstanceQuery
    ) -> List[HistoricProcessInstance]:
        return self._history.historic_instances(query)

    def query_identity_links(self, task_id: str) -> List[IdentityLink]:
        return self._tasks.identity_links(task_id)

    # ==================== Commands ====================

    def deploy(self, resources: Iterable[Resource], name: str) -> Deployment:
        return self._definitions.deploy(resources, name)

    def start_instance(
        self,
        definition_key: str,
        business_key: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ProcessInstance:
        """
        Start the latest deployed version of a definition.

        The token leaves the start event immediately; the instance is
        returned once it has reached its first user task(s), or has ended.

        Raises:
            NotFoundError: If no definition with that key is deployed
            TypeError: If a variable value cannot be stored
        """
        literals = encode_variables(variables)
        definition_uri = self._definitions.latest(definition_key)
        if definition_uri is None:
            raise NotFoundError(
                f"Process definition ({definition_key}) is not deployed",
                entity="definition",
                entity_id=definition_key,
            )

        instance = self._instances.create(
            definition_id=self._definitions.definition_id(definition_uri),
            definition_key=definition_key,
            business_key=business_key,
            literals=literals,
        )
        self._history.record_instance_start(instance)
        if literals:
            self._history.record_variables(instance.id, literals)

        visited: Set[URIRef] = set()
        for start_uri in self._definitions.start_nodes(definition_uri):
            self._arrive(instance, start_uri, visited)
        self._end_if_done(instance.id)

        logger.info(f"Process instance [{instance.id}] of {definition_key} started")
        return instance

    def claim(self, task_id: str, user_id: str) -> None:
        if self._tasks.claim(task_id, user_id) is None:
            raise NotFoundError(f"Task ({task_id}) does not exist", entity_id=task_id)

    def complete(
        self,
        task_id: str,
        variables: Optional[Dict[str, Any]] = None,
        local_scope: bool = False,
    ) -> None:
        """
        Complete an open task and move its token on.

        Args:
            task_id: The task ID
            variables: Optional variables written before completion
            local_scope: Write variables to the task instead of the instance

        Raises:
            NotFoundError: If the task is not open
            TypeError: If a variable value cannot be stored; nothing is written
        """
        task = self._require_task(task_id)
        literals = encode_variables(variables)

        if literals:
            if local_scope:
                self._write_local_variables(task, literals)
            else:
                self._instances.set_variables(task.instance_id, literals)
                self._history.record_variables(task.instance_id, literals)

        self._history.record_task(task)
        self._tasks.remove(task_id)

        instance = self._instances.get(task.instance_id)
        definition_uri = self._instances.definition_uri(task.instance_id)
        node_uri = self._definitions.node_uri(
            self._definitions.definition_id(definition_uri), task.activity_id
        )
        visited: Set[URIRef] = set()
        for target_uri in self._definitions.outgoing(node_uri):
            self._arrive(instance, target_uri, visited)
        self._end_if_done(task.instance_id)

        logger.info(f"Task {task_id} ({task.name}) completed")

    def set_local_variables(self, task_id: str, variables: Dict[str, Any]) -> None:
        task = self._require_task(task_id)
        self._write_local_variables(task, encode_variables(variables))

    def delete_instance(self, instance_id: str, reason: str) -> None:
        """
        Delete a running instance.

        Open tasks are moved to history with the reason as delete reason.

        Raises:
            NotFoundError: If the instance is not running
        """
        if not self._instances.exists(instance_id):
            raise NotFoundError(
                f"Process instance ({instance_id}) does not exist",
                entity="instance",
                entity_id=instance_id,
            )

        for task in self._tasks.list(instance_id=instance_id):
            self._history.record_task(task, delete_reason=reason)
            self._tasks.remove(task.id)

        self._history.record_instance_end(instance_id, delete_reason=reason)
        self._instances.remove(instance_id)

        logger.info(f"Process instance [{instance_id}] deleted: {reason}")

    # ==================== Token Movement ====================

    def _require_task(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task ({task_id}) does not exist", entity_id=task_id)
        return task

    def _write_local_variables(self, task: Task, literals: Dict[str, Literal]) -> None:
        self._tasks.set_local_variables(task.id, literals)
        self._history.record_variables(task.instance_id, literals, task_id=task.id)

    def _arrive(self, instance: ProcessInstance, node_uri: URIRef, visited: Set[URIRef]) -> None:
        """Handle a token reaching a node."""
        if node_uri in visited:
            logger.warning(f"Flow loop without user task at {node_uri}; token dropped")
            return
        visited.add(node_uri)

        node_type = self._definitions.node_type(node_uri)
        if node_type == BPMN.UserTask:
            self._create_task(instance, node_uri)
        elif node_type == BPMN.EndEvent:
            logger.debug(f"Token of instance {instance.id} reached end event {node_uri}")
        else:
            for target_uri in self._definitions.outgoing(node_uri):
                self._arrive(instance, target_uri, visited)

    def _create_task(self, instance: ProcessInstance, node_uri: URIRef) -> Task:
        info = self._definitions.node_info(node_uri)
        variables = self._instances.get_variables(instance.id)

        assignee = resolve_expression(info["assignee"], variables)
        candidates = split_users(resolve_expression(info["candidate_users"], variables))

        return self._tasks.create(
            instance_id=instance.id,
            definition_key=instance.definition_key,
            activity_id=info["element_id"],
            name=info["name"] or info["element_id"],
            assignee=str(assignee) if assignee not in (None, "") else None,
            candidate_users=candidates,
        )

    def _end_if_done(self, instance_id: str) -> None:
        if self._tasks.count(instance_id) > 0:
            return
        self._history.record_instance_end(instance_id)
        self._instances.remove(instance_id)
        logger.info(f"Process instance [{instance_id}] ended")
