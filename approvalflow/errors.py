# Error types for the approval layer
# Every error raised by the engine facade and the core derives from ApprovalFlowError

from typing import Optional


class ApprovalFlowError(Exception):
    """Base class for all approvalflow errors."""

    pass


class NotFoundError(ApprovalFlowError, LookupError):
    """A task, process instance or process definition id does not resolve."""

    def __init__(self, message: str, entity: str = "task", entity_id: Optional[str] = None):
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class UnauthorizedError(ApprovalFlowError, PermissionError):
    """The user is neither the assignee nor a candidate of the task."""

    def __init__(self, user_id: str, task_id: str):
        super().__init__(f"User [{user_id}] is not allowed to act on task [{task_id}]")
        self.user_id = user_id
        self.task_id = task_id


class InvalidArgumentError(ApprovalFlowError, ValueError):
    """A required identifier is missing or empty."""

    pass


class InvalidStateError(ApprovalFlowError, RuntimeError):
    """The operation does not fit the current task or instance state."""

    def __init__(self, message: str, instance_id: Optional[str] = None):
        super().__init__(message)
        self.instance_id = instance_id


class DefinitionError(ApprovalFlowError, ValueError):
    """A deployed BPMN resource cannot be parsed or uses unsupported elements."""

    def __init__(self, message: str, resource: Optional[str] = None):
        super().__init__(message)
        self.resource = resource
