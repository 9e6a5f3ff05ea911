"""Required-field validation and reference resolution for mutation commands.

``validate`` takes a typed draft and the turn's TeamContext and returns one of:

- ``Complete(command)``: every required field is present and every named
  reference resolved to an identifier.
- ``Incomplete(missing, message)``: the clarification to relay to the user.

A reference that names something missing or ambiguous raises ResolutionError;
ToolExecutor reports it the same way it reports an Incomplete verdict.

Create-issue gets individual wording for priority and project because those
are the two fields the model tends to omit or guess.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from doable.commands import (
    DEFAULT_PROJECT_COLOR,
    DEFAULT_ROLE,
    PRIORITY_CHOICES,
    STATUS_FIELD,
    Command,
    CommandType,
    CreateIssueCommand,
    CreateIssueDraft,
    CreateProjectCommand,
    CreateProjectDraft,
    DeleteIssueCommand,
    DeleteIssueDraft,
    DeleteProjectCommand,
    DeleteProjectDraft,
    Draft,
    InviteMemberCommand,
    InviteMemberDraft,
    UpdateIssueCommand,
    UpdateIssueDraft,
    UpdateProjectCommand,
    UpdateProjectDraft,
)
from doable.errors import MultiMatchError, NotFoundError, ResolutionError, ValidationError
from doable.models import Project, ProjectStatus, TeamContext
from doable.resolver import (
    Ambiguous,
    NoAssignee,
    NotFound,
    Resolvable,
    Resolved,
    reference_from,
    resolve,
    resolve_assignee,
)

logger = logging.getLogger(__name__)

MIN_EMAIL_LENGTH = 5


@dataclass(frozen=True, slots=True)
class Complete:
    command: Command


@dataclass(frozen=True, slots=True)
class Incomplete:
    missing: tuple[str, ...]
    message: str


ValidationVerdict = Complete | Incomplete


# ---------------------------------------------------------------------------
# Clarification text
# ---------------------------------------------------------------------------


def _project_listing(context: TeamContext) -> str:
    return ", ".join(p.label for p in context.projects)


def _no_projects_hint() -> str:
    return "Please create a project first or specify an existing project."


def _these(fields: list[str]) -> str:
    return "this" if len(fields) == 1 else "these"


def create_issue_clarification(missing: list[str], context: TeamContext) -> str:
    """Pick the clarification for a create-issue draft with ``missing`` fields."""
    has_projects = bool(context.projects)
    listing = _project_listing(context)

    if missing == ["priority"]:
        return (
            "To create this issue, I need to know the priority level. "
            f"Please specify a priority: {PRIORITY_CHOICES}."
        )

    if missing == ["project"]:
        guidance = (
            f"Available projects: {listing}. Please specify which project this issue should be added to."
            if has_projects
            else _no_projects_hint()
        )
        return f"To create this issue, I need to know which project to add it to. {guidance}"

    if sorted(missing) == ["priority", "project"]:
        guidance = f"Available projects: {listing}." if has_projects else _no_projects_hint()
        return (
            "To create this issue, I need two things: (1) the priority level "
            f"({PRIORITY_CHOICES}), and (2) which project to add it to. {guidance}"
        )

    if "priority" in missing:
        others = [f for f in missing if f != "priority"]
        return (
            f"Missing required information: {', '.join(others)}, and priority. "
            f"Please provide {_these(others)} along with a priority level ({PRIORITY_CHOICES}) to create the issue."
        )

    if "project" in missing:
        others = [f for f in missing if f != "project"]
        guidance = f"Available projects: {listing}." if has_projects else _no_projects_hint()
        return (
            f"Missing required information: {', '.join(others)}, and project. "
            f"Please provide {_these(others)} along with a project. {guidance}"
        )

    return f"Missing required information: {', '.join(missing)}. Please provide {_these(missing)} to create the issue."


def _generic_clarification(missing: list[str], action: str) -> str:
    return f"Missing required information: {', '.join(missing)}. Please provide {_these(missing)} to {action}."


# ---------------------------------------------------------------------------
# Reference resolution
# ---------------------------------------------------------------------------

# field -> (singular noun, plural noun)
_NOUNS = {
    "project": ("project", "projects"),
    "workflow_state": ("workflow state", "workflow states"),
    "assignee": ("team member", "team members"),
    "label": ("label", "labels"),
    "lead": ("team member", "team members"),
}


def _unresolved(
    field: str,
    value: str,
    outcome: Ambiguous | NotFound,
    collection: tuple[Resolvable, ...],
) -> ResolutionError:
    singular, plural = _NOUNS[field]
    if isinstance(outcome, Ambiguous):
        options = ", ".join(c.label for c in outcome.candidates)
        return ResolutionError(
            field,
            value,
            f'The {singular} "{value}" matches multiple {plural}: {options}. Please specify which one you mean.',
        )

    if field == "project":
        if not collection:
            return ResolutionError(field, value, f'The project "{value}" was not found. {_no_projects_hint()}')
        available = ", ".join(item.label for item in collection)
        return ResolutionError(
            field,
            value,
            f'The project "{value}" was not found. Available projects: {available}. '
            "Please specify a valid project name, key, or ID.",
        )

    available = ", ".join(item.label for item in collection)
    hint = f"Available {plural}: {available}." if available else f"No {plural} available."
    return ResolutionError(field, value, f'The {singular} "{value}" was not found. {hint}')


def _require(field: str, value: str, collection: tuple[Resolvable, ...]) -> Resolved:
    outcome = resolve(reference_from(value), collection)
    if isinstance(outcome, Resolved):
        return outcome
    raise _unresolved(field, value, outcome, collection)


def _require_labels(values: list[str], context: TeamContext) -> tuple[str, ...]:
    return tuple(_require("label", v, context.labels).id for v in values)


def _assignee(value: str | None, context: TeamContext) -> Resolved | NoAssignee:
    outcome = resolve_assignee(value, context.members)
    if isinstance(outcome, (Resolved, NoAssignee)):
        return outcome
    raise _unresolved("assignee", value or "", outcome, context.members)


def locate_project(name: str, projects: tuple[Project, ...]) -> Project:
    """Find the single project a free-text name refers to, for update/delete."""
    needle = name.strip().casefold()
    exact = [p for p in projects if needle in (p.name.casefold(), p.key.casefold())]
    matches = exact or [p for p in projects if needle in p.name.casefold()]
    if not matches:
        raise NotFoundError(f'No project found with name "{name}"')
    if len(matches) > 1:
        labels = [p.label for p in matches]
        raise MultiMatchError(
            name,
            labels,
            f'Multiple projects found matching "{name}": {", ".join(labels)}. Please be more specific.',
        )
    return matches[0]


# ---------------------------------------------------------------------------
# Per-command validation
# ---------------------------------------------------------------------------


def _validate_create_issue(draft: CreateIssueDraft, context: TeamContext) -> ValidationVerdict:
    title, state_name, priority, project_name = draft.title, draft.workflow_state, draft.priority, draft.project
    # An explicit "none" priority is a choice; only an absent value is missing.
    if title is None or state_name is None or priority is None or project_name is None:
        required = (("title", title), (STATUS_FIELD, state_name), ("priority", priority), ("project", project_name))
        missing = [field for field, value in required if value is None]
        return Incomplete(tuple(missing), create_issue_clarification(missing, context))

    project = _require("project", project_name, context.projects)
    state = _require("workflow_state", state_name, context.workflow_states)
    assignee = _assignee(draft.assignee, context)

    return Complete(
        CreateIssueCommand(
            title=title,
            workflow_state_id=state.id,
            priority=priority,
            project_id=project.id,
            description=draft.description,
            assignee_id=assignee.id if isinstance(assignee, Resolved) else None,
            assignee_name=assignee.label if isinstance(assignee, Resolved) else None,
            estimate=draft.estimate,
            label_ids=_require_labels(draft.labels or [], context),
        )
    )


def _validate_update_issue(draft: UpdateIssueDraft, context: TeamContext) -> ValidationVerdict:
    if draft.issue_id is None and draft.title is None:
        return Incomplete(("issueId or title",), "Either issueId or title must be provided")

    state_id = None
    if draft.workflow_state is not None:
        state_id = _require("workflow_state", draft.workflow_state, context.workflow_states).id

    assignee_id = assignee_name = None
    clear_assignee = False
    # Only touch the assignee when the model sent the field at all.
    if "assignee" in draft.model_fields_set:
        assignee = _assignee(draft.assignee, context)
        if isinstance(assignee, NoAssignee):
            clear_assignee = True
        else:
            assignee_id, assignee_name = assignee.id, assignee.label

    command = UpdateIssueCommand(
        issue_id=draft.issue_id,
        locate_title=None if draft.issue_id else draft.title,
        title=draft.new_title,
        description=draft.description,
        workflow_state_id=state_id,
        assignee_id=assignee_id,
        assignee_name=assignee_name,
        clear_assignee=clear_assignee,
        priority=draft.priority,
        estimate=draft.estimate,
        label_ids=_require_labels(draft.labels, context) if draft.labels is not None else None,
    )
    if not command.has_changes:
        logger.warning("update-issue for %s carries no changes", draft.issue_id or draft.title)
    return Complete(command)


def _validate_delete_issue(draft: DeleteIssueDraft, context: TeamContext) -> ValidationVerdict:
    if draft.issue_id is None and draft.title is None:
        return Incomplete(("issueId or title",), "Either title or issueId must be provided")
    return Complete(DeleteIssueCommand(issue_id=draft.issue_id, locate_title=None if draft.issue_id else draft.title))


def _lead(value: str | None, context: TeamContext) -> tuple[str | None, str | None]:
    if value is None:
        return None, None
    lead = _require("lead", value, context.members)
    return lead.id, lead.label


def _validate_create_project(draft: CreateProjectDraft, context: TeamContext) -> ValidationVerdict:
    name, key = draft.name, draft.key
    if name is None or key is None:
        missing = [field for field, value in (("name", name), ("key", key)) if value is None]
        return Incomplete(tuple(missing), _generic_clarification(missing, "create the project"))

    lead_id, lead_name = _lead(draft.lead, context)
    return Complete(
        CreateProjectCommand(
            name=name,
            key=key,
            description=draft.description,
            color=draft.color or DEFAULT_PROJECT_COLOR,
            icon=draft.icon,
            status=draft.status or ProjectStatus.ACTIVE,
            lead_id=lead_id,
            lead_name=lead_name,
        )
    )


def _target_project(project_id: str | None, name: str | None, context: TeamContext) -> tuple[str, str | None]:
    if project_id is not None:
        # Ids created earlier in the same turn are not in the snapshot yet.
        known = next((p for p in context.projects if p.id == project_id), None)
        return project_id, known.name if known else None
    if name is None:
        raise ValidationError("Either projectId or name must be provided", missing=["projectId or name"])
    project = locate_project(name, context.projects)
    return project.id, project.name


def _validate_update_project(draft: UpdateProjectDraft, context: TeamContext) -> ValidationVerdict:
    if draft.project_id is None and draft.name is None:
        return Incomplete(("projectId or name",), "Either projectId or name must be provided")

    project_id, _ = _target_project(draft.project_id, draft.name, context)
    lead_id, lead_name = _lead(draft.lead, context)
    return Complete(
        UpdateProjectCommand(
            project_id=project_id,
            name=draft.new_name,
            description=draft.description,
            status=draft.status,
            color=draft.color,
            icon=draft.icon,
            lead_id=lead_id,
            lead_name=lead_name,
        )
    )


def _validate_delete_project(draft: DeleteProjectDraft, context: TeamContext) -> ValidationVerdict:
    if draft.project_id is None and draft.name is None:
        return Incomplete(("projectId or name",), "Either projectId or name must be provided")
    project_id, name = _target_project(draft.project_id, draft.name, context)
    return Complete(DeleteProjectCommand(project_id=project_id, name=name))


def _validate_invite_member(draft: InviteMemberDraft, context: TeamContext) -> ValidationVerdict:
    if draft.email is None:
        return Incomplete(("email",), _generic_clarification(["email"], "send the invitation"))
    if len(draft.email) < MIN_EMAIL_LENGTH:
        raise ValidationError(f'"{draft.email}" is not a valid email address.', missing=["email"])
    return Complete(InviteMemberCommand(email=draft.email, role=draft.role or DEFAULT_ROLE))


_VALIDATORS: dict[CommandType, Callable[[Draft, TeamContext], ValidationVerdict]] = {
    CommandType.CREATE_ISSUE: _validate_create_issue,  # type: ignore[dict-item]
    CommandType.UPDATE_ISSUE: _validate_update_issue,  # type: ignore[dict-item]
    CommandType.DELETE_ISSUE: _validate_delete_issue,  # type: ignore[dict-item]
    CommandType.CREATE_PROJECT: _validate_create_project,  # type: ignore[dict-item]
    CommandType.UPDATE_PROJECT: _validate_update_project,  # type: ignore[dict-item]
    CommandType.DELETE_PROJECT: _validate_delete_project,  # type: ignore[dict-item]
    CommandType.INVITE_MEMBER: _validate_invite_member,  # type: ignore[dict-item]
}


def validate(command_type: CommandType, draft: Draft, context: TeamContext) -> ValidationVerdict:
    """Check required fields of ``draft`` and resolve its references against ``context``."""
    return _VALIDATORS[command_type](draft, context)
