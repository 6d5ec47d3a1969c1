# Approval Service
# Wires the approval components around one engine handle

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from approvalflow.config import Settings
from approvalflow.engine.facade import EngineFacade
from approvalflow.engine.process_engine import ProcessEngine
from approvalflow.engine.queries import (
    HistoricInstanceQuery,
    HistoricVariableQuery,
    SortOrder,
    TaskQuery,
)
from approvalflow.errors import InvalidArgumentError
from approvalflow.models import (
    Deployment,
    HistoricProcessInstance,
    HistoricTaskInstance,
    ProcessInstance,
    Task,
    TrailReport,
)
from .authorization import AuthorizationEngine
from .navigator import InstanceNavigator, business_key_text
from .resolver import TaskResolver
from .trail import TrailReporter
from .transitions import TaskTransitionController

logger = logging.getLogger(__name__)


class ApprovalService:
    """
    Single entry point for applications.

    Components (all sharing the engine passed in):
    - resolver: TaskResolver
    - authorization: AuthorizationEngine
    - transitions: TaskTransitionController
    - navigator: InstanceNavigator
    - trail: TrailReporter

    The component operations are re-exposed here under the same names,
    together with deployment, plain start and variable lookups.
    """

    def __init__(self, engine: EngineFacade):
        """
        Initialize the service.

        Args:
            engine: The workflow engine handle every component uses
        """
        self.engine = engine
        self.resolver = TaskResolver(engine)
        self.authorization = AuthorizationEngine(engine)
        self.transitions = TaskTransitionController(engine, self.authorization, self.resolver)
        self.navigator = InstanceNavigator(
            engine, self.resolver, self.authorization, self.transitions
        )
        self.trail = TrailReporter(engine, self.resolver)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ApprovalService":
        """Build a service over the reference engine."""
        return cls(ProcessEngine.from_settings(settings or Settings.from_env()))

    # ==================== Definitions & Start ====================

    def deploy(self, resources: Iterable[Any], name: str) -> Deployment:
        """Deploy BPMN resources (paths or (filename, content) pairs)."""
        return self.engine.deploy(list(resources), name)

    def start(
        self,
        definition_key: str,
        business_key: Optional[Union[str, int]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ProcessInstance:
        """Start an instance without completing its first task."""
        return self.engine.start_instance(
            definition_key, business_key_text(business_key), variables
        )

    def start_and_advance(
        self,
        definition_key: str,
        business_key: Optional[Union[str, int]] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> ProcessInstance:
        return self.navigator.start_and_advance(definition_key, business_key, variables)

    # ==================== Resolver ====================

    def last_task(self, instance_id: str) -> Optional[Task]:
        return self.resolver.last_task(instance_id)

    def current_tasks(self, instance_id: str) -> List[Task]:
        return self.resolver.current_tasks(instance_id)

    def current_task_by_name(self, instance_id: str, name: Optional[str]) -> Optional[Task]:
        return self.resolver.current_task_by_name(instance_id, name)

    def is_current_task(self, instance_id: str, name: Optional[str]) -> bool:
        return self.resolver.is_current_task(instance_id, name)

    def last_process_instance(self, definition_key: str) -> Optional[ProcessInstance]:
        return self.resolver.last_process_instance(definition_key)

    # ==================== Authorization ====================

    def candidates(self, task_id: str) -> List[str]:
        return self.authorization.candidates(task_id)

    def can_act(self, user_id: Optional[str], task_id: str) -> bool:
        return self.authorization.can_act(user_id, task_id)

    def executor_of(self, task_id: str) -> Optional[str]:
        return self.authorization.executor_of(task_id)

    def completable_tasks(self, user_id: str, definition_key: Optional[str] = None) -> List[Task]:
        """
        Open tasks the user is assignee or candidate of.

        Args:
            user_id: The user
            definition_key: Optionally only tasks of this definition

        Returns:
            Matching tasks in engine-default order
        """
        if not user_id:
            raise InvalidArgumentError("A user id is required to list completable tasks")
        return self.engine.query_tasks(
            TaskQuery(candidate_or_assigned=user_id, definition_key=definition_key)
        )

    # ==================== Transitions ====================

    def complete_with_check(
        self,
        user_id: str,
        task_id: str,
        variables: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.transitions.complete_with_check(user_id, task_id, variables)

    def reject_task(
        self,
        task_id: str,
        user_id: str,
        reason: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.transitions.reject_task(task_id, user_id, reason, variables)

    def complete_task_by_name(self, instance_id: str, task_name: str) -> None:
        self.transitions.complete_task_by_name(instance_id, task_name)

    # ==================== Navigation ====================

    def advance(self, instance_id: str) -> None:
        self.navigator.advance(instance_id)

    def pending_approvals(self, user_id: str) -> List[ProcessInstance]:
        return self.navigator.pending_approvals(user_id)

    # ==================== History ====================

    def history_of(self, instance_id: str) -> List[HistoricTaskInstance]:
        return self.trail.history_of(instance_id)

    def report(self, instance_id: str) -> TrailReport:
        return self.trail.report(instance_id)

    def log_report(self, instance_id: str) -> TrailReport:
        return self.trail.log_report(instance_id)

    def task_variables(self, task_id: str) -> Dict[str, Any]:
        """
        Variables recorded for a task, looked up in history.

        Works for open and finished tasks alike.
        """
        variables = {}
        for variable in self.engine.query_historic_variables(HistoricVariableQuery(task_id=task_id)):
            variables[variable.name] = variable.value
        return variables

    def historic_instances(
        self,
        user_id: Optional[str] = None,
        definition_key: Optional[str] = None,
    ) -> List[HistoricProcessInstance]:
        """
        Historic instances, newest first.

        Args:
            user_id: Only instances with a historic task assigned to this user
            definition_key: Only instances of this definition
        """
        return self.engine.query_historic_instances(
            HistoricInstanceQuery(
                definition_key=definition_key,
                involved_user=user_id,
                order_by_start_time=SortOrder.DESC,
            )
        )
