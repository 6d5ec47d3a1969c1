# Engine Facade contract
# The query and command surfaces the approval layer consumes from a workflow engine

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from approvalflow.models import (
    Deployment,
    HistoricProcessInstance,
    HistoricTaskInstance,
    HistoricVariable,
    IdentityLink,
    ProcessInstance,
    Task,
)
from .queries import (
    HistoricInstanceQuery,
    HistoricTaskQuery,
    HistoricVariableQuery,
    InstanceQuery,
    TaskQuery,
)


class EngineFacade(ABC):
    """
    Contract between the approval layer and a workflow engine.

    Implementations must keep at most one open task per thread of execution
    and honour the orderings requested by the query objects. They do not
    check who acts on a task; that is the approval layer's job.

    Commands raise NotFoundError for ids that do not resolve.
    """

    # ==================== Queries ====================

    @abstractmethod
    def query_tasks(self, query: TaskQuery) -> List[Task]:
        """Open tasks matching the query."""

    @abstractmethod
    def query_instances(self, query: InstanceQuery) -> List[ProcessInstance]:
        """Running process instances matching the query."""

    @abstractmethod
    def query_historic_tasks(self, query: HistoricTaskQuery) -> List[HistoricTaskInstance]:
        """Completed or deleted tasks matching the query."""

    @abstractmethod
    def query_historic_variables(self, query: HistoricVariableQuery) -> List[HistoricVariable]:
        """Recorded variable values matching the query."""

    @abstractmethod
    def query_historic_instances(
        self, query: HistoricInstanceQuery
    ) -> List[HistoricProcessInstance]:
        """Historic process instances matching the query."""

    @abstractmethod
    def query_identity_links(self, task_id: str) -> List[IdentityLink]:
        """Identity links of an open task, in enumeration order."""

    # ==================== Commands ====================

    @abstractmethod
    def deploy(self, resources: Iterable[Any], name: str) -> Deployment:
        """Deploy process definition resources."""

    @abstractmethod
    def start_instance(
        self,
        definition_key: str,
        business_key: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ProcessInstance:
        """Start the latest version of a definition."""

    @abstractmethod
    def claim(self, task_id: str, user_id: str) -> None:
        """Make a user the assignee of a task."""

    @abstractmethod
    def complete(
        self,
        task_id: str,
        variables: Optional[Dict[str, Any]] = None,
        local_scope: bool = False,
    ) -> None:
        """Complete a task, optionally writing variables first."""

    @abstractmethod
    def set_local_variables(self, task_id: str, variables: Dict[str, Any]) -> None:
        """Write variables into a task's local scope."""

    @abstractmethod
    def delete_instance(self, instance_id: str, reason: str) -> None:
        """Delete a running instance and its open tasks."""
