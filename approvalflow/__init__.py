# approvalflow - authorization and navigation over a workflow engine
# Package initialization

from .errors import (
    ApprovalFlowError,
    NotFoundError,
    UnauthorizedError,
    InvalidArgumentError,
    InvalidStateError,
    DefinitionError,
)
from .models import (
    ProcessInstance,
    Task,
    IdentityLink,
    HistoricTaskInstance,
    HistoricVariable,
    HistoricProcessInstance,
    Deployment,
    TrailReport,
)
from .config import Settings, configure_logging
from .engine import EngineFacade, ProcessEngine
from .core import (
    TaskResolver,
    AuthorizationEngine,
    TaskTransitionController,
    InstanceNavigator,
    TrailReporter,
    ApprovalService,
)

__all__ = [
    # Errors
    "ApprovalFlowError",
    "NotFoundError",
    "UnauthorizedError",
    "InvalidArgumentError",
    "InvalidStateError",
    "DefinitionError",
    # Models
    "ProcessInstance",
    "Task",
    "IdentityLink",
    "HistoricTaskInstance",
    "HistoricVariable",
    "HistoricProcessInstance",
    "Deployment",
    "TrailReport",
    # Configuration
    "Settings",
    "configure_logging",
    # Engine
    "EngineFacade",
    "ProcessEngine",
    # Core
    "TaskResolver",
    "AuthorizationEngine",
    "TaskTransitionController",
    "InstanceNavigator",
    "TrailReporter",
    "ApprovalService",
]

__version__ = "1.0.0"
