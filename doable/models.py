"""Shared pydantic models — the contract between the store, the assistant core and main.py."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class Priority(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class WorkflowStateType(str, Enum):
    UNSTARTED = "unstarted"
    STARTED = "started"
    COMPLETED = "completed"
    CANCELED = "canceled"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    key: str  # short unique code, e.g. WEB
    status: ProjectStatus = ProjectStatus.ACTIVE
    color: str | None = None
    description: str | None = None
    issue_count: int = 0

    @property
    def label(self) -> str:
        return f"{self.name} ({self.key})"


class WorkflowState(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: WorkflowStateType

    @property
    def label(self) -> str:
        return self.name


class Label(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str

    @property
    def label(self) -> str:
        return self.name


class Member(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    user_name: str
    email: str | None = None
    role: str = "developer"

    # Resolver works over anything with id/name/label.
    @property
    def id(self) -> str:
        return self.user_id

    @property
    def name(self) -> str:
        return self.user_name

    @property
    def label(self) -> str:
        return self.user_name


class TeamContext(BaseModel):
    """Point-in-time snapshot of a team, fetched once per conversational turn."""

    model_config = ConfigDict(frozen=True)

    team_id: str
    projects: tuple[Project, ...] = ()
    workflow_states: tuple[WorkflowState, ...] = ()
    labels: tuple[Label, ...] = ()
    members: tuple[Member, ...] = ()


class Issue(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    number: int
    title: str
    description: str | None = None
    priority: Priority = Priority.NONE
    project_id: str | None = None
    project: str | None = None  # project name
    workflow_state_id: str | None = None
    workflow_state: str | None = None  # workflow state name
    assignee_id: str | None = None
    assignee: str | None = None
    labels: list[str] = []
    estimate: float | None = None

    @property
    def display_id(self) -> str:
        return f'#{self.number} "{self.title}"'


class Invitation(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    role: str
    status: str  # "pending" | "accepted" | "revoked"
    expires_at: datetime | None = None


class TeamStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    issues: int
    projects: int
    members: int


class ToolResult(BaseModel):
    """Outcome of one tool call, relayed verbatim to the conversational model."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str | None = None
    error: str | None = None
    error_type: str | None = None  # DoableError subclass name
    data: dict[str, Any] = {}

    @classmethod
    def ok(cls, message: str | None = None, **data: Any) -> "ToolResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: str, error_type: str | None = None, **data: Any) -> "ToolResult":
        return cls(success=False, error=error, error_type=error_type, data=data)
