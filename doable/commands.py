"""Command drafts (raw tool arguments, typed) and fully resolved commands.

Drafts are what the conversational model sent, with every field optional.
Commands are what the store receives: identifiers only, never names.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from doable.errors import ValidationError
from doable.models import Priority, ProjectStatus
from doable.resolver import is_absent

DEFAULT_PROJECT_COLOR = "#6366f1"
DEFAULT_ROLE = "developer"
PRIORITY_CHOICES = "low, medium, high, urgent, or none"
STATUS_FIELD = "status (workflow state)"


class CommandType(str, Enum):
    CREATE_ISSUE = "create-issue"
    UPDATE_ISSUE = "update-issue"
    DELETE_ISSUE = "delete-issue"
    CREATE_PROJECT = "create-project"
    UPDATE_PROJECT = "update-project"
    DELETE_PROJECT = "delete-project"
    INVITE_MEMBER = "invite-member"


def _alias(*names: str) -> Any:
    return Field(default=None, validation_alias=AliasChoices(*names))


# ---------------------------------------------------------------------------
# Drafts
# ---------------------------------------------------------------------------


class Draft(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _drop_absent(cls, value: Any) -> Any:
        if isinstance(value, list):
            kept = [v.strip() if isinstance(v, str) else v for v in value if not is_absent(v)]
            # ["null"] means the field was left out; an empty list is a deliberate clear.
            return kept if kept or not value else None
        if is_absent(value):
            return None
        if isinstance(value, str):
            return value.strip()
        return value


class CreateIssueDraft(Draft):
    title: str | None = None
    description: str | None = None
    project: str | None = _alias("projectId", "project")
    workflow_state: str | None = _alias("workflowStateId", "workflowState", "status")
    assignee: str | None = _alias("assigneeId", "assignee")
    priority: Priority | None = None
    estimate: float | None = None
    labels: list[str] | None = _alias("labelIds", "labels")

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class UpdateIssueDraft(Draft):
    issue_id: str | None = _alias("issueId", "issue_id")
    title: str | None = None  # locates the issue when issue_id is absent
    new_title: str | None = _alias("newTitle", "new_title")
    description: str | None = None
    workflow_state: str | None = _alias("workflowStateId", "workflowState", "status")
    assignee: str | None = _alias("assigneeId", "assignee")
    priority: Priority | None = None
    estimate: float | None = None
    labels: list[str] | None = _alias("labelIds", "labels")

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class DeleteIssueDraft(Draft):
    issue_id: str | None = _alias("issueId", "issue_id")
    title: str | None = None


class CreateProjectDraft(Draft):
    name: str | None = None
    key: str | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    lead: str | None = _alias("leadId", "lead")
    status: ProjectStatus | None = None


class UpdateProjectDraft(Draft):
    project_id: str | None = _alias("projectId", "project_id")
    name: str | None = None  # locates the project when project_id is absent
    new_name: str | None = _alias("newName", "new_name")
    description: str | None = None
    status: ProjectStatus | None = None
    color: str | None = None
    icon: str | None = None
    lead: str | None = _alias("leadId", "lead")


class DeleteProjectDraft(Draft):
    project_id: str | None = _alias("projectId", "project_id")
    name: str | None = None


class InviteMemberDraft(Draft):
    email: EmailStr | None = None
    role: str | None = None


DRAFT_TYPES: dict[CommandType, type[Draft]] = {
    CommandType.CREATE_ISSUE: CreateIssueDraft,
    CommandType.UPDATE_ISSUE: UpdateIssueDraft,
    CommandType.DELETE_ISSUE: DeleteIssueDraft,
    CommandType.CREATE_PROJECT: CreateProjectDraft,
    CommandType.UPDATE_PROJECT: UpdateProjectDraft,
    CommandType.DELETE_PROJECT: DeleteProjectDraft,
    CommandType.INVITE_MEMBER: InviteMemberDraft,
}


def _describe_error(error: Mapping[str, Any]) -> str:
    field = str(error["loc"][0]) if error.get("loc") else "value"
    given = error.get("input")
    if field == "priority":
        return f'Invalid priority "{given}". Please specify a priority: {PRIORITY_CHOICES}.'
    if field == "status":
        return f'Invalid status "{given}". Valid statuses: active, completed, canceled.'
    if field == "email":
        return f'"{given}" is not a valid email address.'
    return f"Invalid value for {field}: {error['msg']}"


# required field -> argument names that can carry it
_REQUIRED_ARGUMENTS: dict[CommandType, tuple[tuple[str, tuple[str, ...]], ...]] = {
    CommandType.CREATE_ISSUE: (
        ("title", ("title",)),
        (STATUS_FIELD, ("workflowStateId", "workflowState", "status")),
        ("priority", ("priority",)),
        ("project", ("projectId", "project")),
    ),
    CommandType.CREATE_PROJECT: (("name", ("name",)), ("key", ("key",))),
}


def _missing_arguments(command_type: CommandType, arguments: Mapping[str, Any]) -> list[str]:
    return [
        field
        for field, names in _REQUIRED_ARGUMENTS.get(command_type, ())
        if all(is_absent(arguments.get(name)) for name in names)
    ]


def parse_draft(command_type: CommandType, arguments: Mapping[str, Any]) -> Draft:
    """Build the typed draft for a tool call, rejecting values that cannot be parsed.

    The rejection also names any required field that was left out, so one
    clarification covers both problems.
    """
    draft_type = DRAFT_TYPES[command_type]
    try:
        return draft_type.model_validate(dict(arguments))
    except PydanticValidationError as exc:
        messages = [_describe_error(e) for e in exc.errors()]
        missing = _missing_arguments(command_type, arguments)
        if missing:
            messages.append(f"Missing required information: {', '.join(missing)}.")
        raise ValidationError(" ".join(messages), missing=missing) from exc


# ---------------------------------------------------------------------------
# Resolved commands
# ---------------------------------------------------------------------------


class Command(BaseModel):
    model_config = ConfigDict(frozen=True)


class CreateIssueCommand(Command):
    title: str
    workflow_state_id: str
    priority: Priority
    project_id: str
    description: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    estimate: float | None = None
    label_ids: tuple[str, ...] = ()


class UpdateIssueCommand(Command):
    issue_id: str | None = None
    locate_title: str | None = None
    title: str | None = None
    description: str | None = None
    workflow_state_id: str | None = None
    assignee_id: str | None = None
    assignee_name: str | None = None
    clear_assignee: bool = False
    priority: Priority | None = None
    estimate: float | None = None
    label_ids: tuple[str, ...] | None = None

    @property
    def has_changes(self) -> bool:
        return self.clear_assignee or any(
            v is not None
            for v in (
                self.title,
                self.description,
                self.workflow_state_id,
                self.assignee_id,
                self.priority,
                self.estimate,
                self.label_ids,
            )
        )


class DeleteIssueCommand(Command):
    issue_id: str | None = None
    locate_title: str | None = None


class CreateProjectCommand(Command):
    name: str
    key: str
    description: str | None = None
    color: str = DEFAULT_PROJECT_COLOR
    icon: str | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    lead_id: str | None = None
    lead_name: str | None = None


class UpdateProjectCommand(Command):
    project_id: str
    name: str | None = None
    description: str | None = None
    status: ProjectStatus | None = None
    color: str | None = None
    icon: str | None = None
    lead_id: str | None = None
    lead_name: str | None = None


class DeleteProjectCommand(Command):
    project_id: str
    name: str | None = None


class InviteMemberCommand(Command):
    email: str
    role: str = DEFAULT_ROLE
