# Pydantic models for approvalflow
# Records exchanged between the engine facade and the approval layer

from typing import Any, List, Optional

from pydantic import BaseModel, Field


# ==================== Runtime Models ====================

class ProcessInstance(BaseModel):
    """An active execution of a process definition"""
    id: str = Field(..., description="Opaque instance id")
    definition_key: str = Field(..., description="Key of the process definition")
    definition_id: Optional[str] = Field(None, description="Id of the deployed definition version")
    business_key: Optional[str] = Field(None, description="Caller-supplied business key")
    started_at: Optional[str] = Field(None, description="ISO-8601 start timestamp")


class Task(BaseModel):
    """An open unit of human work within one process instance"""
    id: str
    name: str
    instance_id: str
    definition_key: Optional[str] = None
    activity_id: Optional[str] = None
    assignee: Optional[str] = None
    created_at: str
    claimed_at: Optional[str] = None


class IdentityLink(BaseModel):
    """A user linked to a task, e.g. as candidate"""
    type: str
    user_id: Optional[str] = None
    task_id: Optional[str] = None


# ==================== History Models ====================

class HistoricTaskInstance(BaseModel):
    """Read-only record of a completed or deleted task"""
    id: str
    name: str
    instance_id: str
    activity_id: Optional[str] = None
    assignee: Optional[str] = None
    created_at: str
    claimed_at: Optional[str] = None
    ended_at: Optional[str] = None
    delete_reason: Optional[str] = None


class HistoricVariable(BaseModel):
    """A variable value recorded by the engine history"""
    name: str
    value: Any = None
    instance_id: str
    task_id: Optional[str] = None


class HistoricProcessInstance(BaseModel):
    """Read-only record of a process instance, running or finished"""
    id: str
    definition_key: str
    business_key: Optional[str] = None
    started_at: str
    ended_at: Optional[str] = None
    delete_reason: Optional[str] = None


# ==================== Deployment Models ====================

class Deployment(BaseModel):
    """Result of deploying a set of resources"""
    id: str
    name: str
    definition_keys: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    deployed_at: str


# ==================== Report Models ====================

class TrailReport(BaseModel):
    """History and open work of one process instance, for display"""
    instance_id: str
    history: List[HistoricTaskInstance] = Field(default_factory=list)
    current: List[Task] = Field(default_factory=list)
