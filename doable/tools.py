"""Tool catalogue exposed to the conversational model.

Tool names are the model-facing camelCase names. Mutation tools map to a
CommandType and take their schema from the command draft; read tools take a
small argument model of their own.
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from doable.commands import DRAFT_TYPES, CommandType
from doable.resolver import is_absent

MUTATION_TOOLS: dict[str, CommandType] = {
    "createIssue": CommandType.CREATE_ISSUE,
    "updateIssue": CommandType.UPDATE_ISSUE,
    "deleteIssue": CommandType.DELETE_ISSUE,
    "createProject": CommandType.CREATE_PROJECT,
    "updateProject": CommandType.UPDATE_PROJECT,
    "deleteProject": CommandType.DELETE_PROJECT,
    "inviteTeamMember": CommandType.INVITE_MEMBER,
}


class ReadArgs(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    @field_validator("*", mode="before")
    @classmethod
    def _drop_absent(cls, value: Any) -> Any:
        return None if is_absent(value) else value


class ListIssuesArgs(ReadArgs):
    limit: int | None = Field(default=None, ge=1, description="Maximum number of issues to return (omit for all)")


class GetIssueArgs(ReadArgs):
    issue_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("issueId", "issue_id"),
        description="The ID of the issue",
    )


class NoArgs(ReadArgs):
    pass


READ_TOOLS: dict[str, type[ReadArgs]] = {
    "listIssues": ListIssuesArgs,
    "getIssue": GetIssueArgs,
    "listProjects": NoArgs,
    "listTeamMembers": NoArgs,
    "getTeamStats": NoArgs,
}

DESCRIPTIONS = {
    "createIssue": (
        "Create a new issue. Workflow state, project, assignee and label names are matched to IDs "
        "automatically. Title, status, priority and project are required; ask the user for any that "
        'are missing. Never default priority to "none" and always ask which project to use.'
    ),
    "updateIssue": (
        "Update an existing issue by ID or title. Use workflow state names, assignee names and label "
        'names. Pass assigneeId "unassigned" to clear the assignee.'
    ),
    "deleteIssue": "Delete an issue by its ID or title. A title is matched against existing issues.",
    "createProject": (
        'Create a new project. Color defaults to #6366f1 and status defaults to "active" when omitted.'
    ),
    "updateProject": "Update an existing project by ID or name: status, name, description, color, icon or lead.",
    "deleteProject": "Delete a project by its ID or name.",
    "inviteTeamMember": 'Invite a new team member via email. Role defaults to "developer".',
    "listIssues": "Get ALL issues for the team unless a limit is requested.",
    "getIssue": "Get details of a specific issue by ID.",
    "listProjects": "Get all projects for the team.",
    "listTeamMembers": "Get all team members.",
    "getTeamStats": "Get team statistics: issue, project and member counts.",
}


def tool_names() -> list[str]:
    return [*MUTATION_TOOLS, *READ_TOOLS]


def tool_definitions() -> list[dict[str, Any]]:
    """JSON-schema tool definitions, ready for a function-calling model API."""
    definitions = []
    for name in tool_names():
        if name in MUTATION_TOOLS:
            model: type[BaseModel] = DRAFT_TYPES[MUTATION_TOOLS[name]]
        else:
            model = READ_TOOLS[name]
        schema = model.model_json_schema(by_alias=True)
        schema.pop("title", None)
        definitions.append({"name": name, "description": DESCRIPTIONS[name], "parameters": schema})
    return definitions
