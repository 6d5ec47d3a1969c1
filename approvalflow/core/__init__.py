# Core approval layer
# Authorization and navigation on top of an EngineFacade

from .resolver import TaskResolver
from .authorization import AuthorizationEngine, resolve_executor
from .transitions import TaskTransitionController
from .navigator import InstanceNavigator
from .trail import TrailReporter
from .service import ApprovalService

__all__ = [
    "TaskResolver",
    "AuthorizationEngine",
    "resolve_executor",
    "TaskTransitionController",
    "InstanceNavigator",
    "TrailReporter",
    "ApprovalService",
]
