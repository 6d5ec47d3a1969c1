# Query objects for the engine facade
# One filter dataclass per query kind, in place of fluent query builders

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


class SortOrder(str, Enum):
    """Sort direction for ordered queries"""
    ASC = "asc"
    DESC = "desc"


@dataclass
class TaskQuery:
    """Filter for open tasks.

    All set fields must match. ``candidate_or_assigned`` matches tasks whose
    assignee is the user or whose candidate links contain the user.
    ``order_by_create_time`` of None keeps the engine-default ordering.
    """

    task_id: Optional[str] = None
    instance_id: Optional[str] = None
    definition_key: Optional[str] = None
    candidate_or_assigned: Optional[str] = None
    name: Optional[str] = None
    order_by_create_time: Optional[SortOrder] = None


@dataclass
class InstanceQuery:
    """Filter for running process instances.

    ``instance_ids`` restricts the result to a set of ids; an empty set
    matches nothing.
    """

    instance_id: Optional[str] = None
    instance_ids: Optional[Iterable[str]] = None
    definition_key: Optional[str] = None
    active: bool = False
    order_by_id: Optional[SortOrder] = None


@dataclass
class HistoricTaskQuery:
    """Filter for historic task instances."""

    instance_id: Optional[str] = None
    task_id: Optional[str] = None
    assignee: Optional[str] = None
    order_by_create_time: Optional[SortOrder] = None


@dataclass
class HistoricVariableQuery:
    """Filter for historic variables."""

    task_id: Optional[str] = None
    instance_id: Optional[str] = None


@dataclass
class HistoricInstanceQuery:
    """Filter for historic process instances.

    ``involved_user`` matches instances with at least one historic task
    assigned to that user.
    """

    definition_key: Optional[str] = None
    involved_user: Optional[str] = None
    finished: Optional[bool] = None
    order_by_start_time: Optional[SortOrder] = None
