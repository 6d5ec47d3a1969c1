# Engine package for approvalflow
# The EngineFacade contract, its query objects and the RDF reference engine

from .base import BaseStorageService, BPMN, PROC, INST, TASK, VAR, HIST, META
from .queries import (
    SortOrder,
    TaskQuery,
    InstanceQuery,
    HistoricTaskQuery,
    HistoricVariableQuery,
    HistoricInstanceQuery,
)
from .facade import EngineFacade
from .definitions import DefinitionRepository, parse_bpmn
from .instances import InstanceRepository
from .tasks import TaskRepository
from .history import HistoryRepository
from .process_engine import ProcessEngine

__all__ = [
    # Contract
    "EngineFacade",
    "SortOrder",
    "TaskQuery",
    "InstanceQuery",
    "HistoricTaskQuery",
    "HistoricVariableQuery",
    "HistoricInstanceQuery",
    # Reference engine
    "ProcessEngine",
    "BaseStorageService",
    "DefinitionRepository",
    "InstanceRepository",
    "TaskRepository",
    "HistoryRepository",
    "parse_bpmn",
    # Namespaces
    "BPMN",
    "PROC",
    "INST",
    "TASK",
    "VAR",
    "HIST",
    "META",
]
