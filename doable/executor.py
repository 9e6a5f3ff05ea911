"""Execute the model's tool calls against a TeamStore.

Every call returns a ToolResult. Clarifications, resolution failures and store
errors all come back as ``success=False`` with a message the model relays to
the user verbatim; nothing is retried here.
"""

import logging
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from doable.commands import (
    Command,
    CommandType,
    CreateIssueCommand,
    CreateProjectCommand,
    DeleteIssueCommand,
    DeleteProjectCommand,
    InviteMemberCommand,
    UpdateIssueCommand,
    UpdateProjectCommand,
    parse_draft,
)
from doable.errors import DoableError, MultiMatchError, NotFoundError, ValidationError
from doable.models import Issue, TeamContext, ToolResult
from doable.store.base import TeamStore
from doable.tools import MUTATION_TOOLS, READ_TOOLS, GetIssueArgs, ListIssuesArgs, ReadArgs
from doable.validator import Incomplete, validate

logger = logging.getLogger(__name__)

INVITATION_TTL = timedelta(days=7)

_ISSUE_SUMMARY = {"id", "number", "title", "description", "priority", "assignee", "project", "workflow_state"}


def _issue_data(issue: Issue, fields: set[str] = _ISSUE_SUMMARY) -> dict[str, Any]:
    return issue.model_dump(mode="json", include=fields)


class ToolExecutor:
    def __init__(self, store: TeamStore) -> None:
        self._store = store
        self._mutations: dict[CommandType, Callable[[Any], Awaitable[ToolResult]]] = {
            CommandType.CREATE_ISSUE: self._create_issue,
            CommandType.UPDATE_ISSUE: self._update_issue,
            CommandType.DELETE_ISSUE: self._delete_issue,
            CommandType.CREATE_PROJECT: self._create_project,
            CommandType.UPDATE_PROJECT: self._update_project,
            CommandType.DELETE_PROJECT: self._delete_project,
            CommandType.INVITE_MEMBER: self._invite_member,
        }
        self._reads: dict[str, Callable[[Any, TeamContext | None], Awaitable[ToolResult]]] = {
            "listIssues": self._list_issues,
            "getIssue": self._get_issue,
            "listProjects": self._list_projects,
            "listTeamMembers": self._list_team_members,
            "getTeamStats": self._get_team_stats,
        }

    async def execute(
        self,
        tool_name: str,
        arguments: Mapping[str, Any] | None = None,
        context: TeamContext | None = None,
    ) -> ToolResult:
        """Run one tool call. ``context`` is the turn's snapshot; fetched when not given."""
        arguments = arguments or {}
        try:
            if tool_name in MUTATION_TOOLS:
                if context is None:
                    context = await self._store.get_team_context()
                return await self._mutate(MUTATION_TOOLS[tool_name], arguments, context)
            if tool_name in READ_TOOLS:
                return await self._read(tool_name, arguments, context)
        except MultiMatchError as exc:
            logger.info("%s: %s", tool_name, exc)
            return ToolResult.fail(str(exc), type(exc).__name__, matches=exc.matches)
        except ValidationError as exc:
            logger.info("%s: %s", tool_name, exc)
            if exc.missing:
                return ToolResult.fail(str(exc), type(exc).__name__, missing=exc.missing)
            return ToolResult.fail(str(exc), type(exc).__name__)
        except DoableError as exc:
            logger.info("%s: %s", tool_name, exc)
            return ToolResult.fail(str(exc), type(exc).__name__)
        except Exception:
            logger.exception("Tool %s failed", tool_name)
            return ToolResult.fail(f"Failed to run {tool_name}")

        logger.warning("Unknown tool %s", tool_name)
        return ToolResult.fail(f"Unknown tool: {tool_name}", "UnknownTool")

    async def _mutate(
        self,
        command_type: CommandType,
        arguments: Mapping[str, Any],
        context: TeamContext,
    ) -> ToolResult:
        draft = parse_draft(command_type, arguments)
        verdict = validate(command_type, draft, context)
        if isinstance(verdict, Incomplete):
            logger.info("%s incomplete, missing %s", command_type.value, ", ".join(verdict.missing))
            return ToolResult.fail(verdict.message, ValidationError.__name__, missing=list(verdict.missing))
        return await self._dispatch(command_type, verdict.command)

    async def _dispatch(self, command_type: CommandType, command: Command) -> ToolResult:
        logger.debug("Dispatching %s: %r", command_type.value, command)
        return await self._mutations[command_type](command)

    async def _read(self, tool_name: str, arguments: Mapping[str, Any], context: TeamContext | None) -> ToolResult:
        args_type: type[ReadArgs] = READ_TOOLS[tool_name]
        try:
            args = args_type.model_validate(dict(arguments))
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid arguments for {tool_name}: {exc.errors()[0]['msg']}") from exc
        return await self._reads[tool_name](args, context)

    # ------------------------------------------------------------------
    # Locating by title
    # ------------------------------------------------------------------

    async def _locate_issue(self, title: str | None) -> Issue:
        if not title:
            raise ValidationError("Either issueId or title must be provided", missing=["issueId or title"])
        issues = await self._store.list_issues()
        needle = title.strip().casefold()
        exact = [i for i in issues if i.title.casefold() == needle]
        matches = exact or [i for i in issues if needle in i.title.casefold()]
        if not matches:
            raise NotFoundError(f'No issue found with title "{title}"')
        if len(matches) > 1:
            labels = [i.display_id for i in matches]
            raise MultiMatchError(
                title,
                labels,
                f'Multiple issues found matching "{title}": {", ".join(labels)}. Please be more specific.',
            )
        return matches[0]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _create_issue(self, command: CreateIssueCommand) -> ToolResult:
        issue = await self._store.create_issue(command)
        return ToolResult.ok(
            f'Issue #{issue.number} "{issue.title}" has been created successfully.',
            issue=_issue_data(issue, {"id", "title", "number", "description", "priority"}),
        )

    async def _update_issue(self, command: UpdateIssueCommand) -> ToolResult:
        issue_id = command.issue_id or (await self._locate_issue(command.locate_title)).id
        issue = await self._store.update_issue(issue_id, command)
        if issue is None:
            raise NotFoundError("Issue not found")
        return ToolResult.ok(
            f'Issue #{issue.number} "{issue.title}" has been updated successfully.',
            issue=_issue_data(issue, {"id", "title", "number"}),
        )

    async def _delete_issue(self, command: DeleteIssueCommand) -> ToolResult:
        if command.issue_id is None:
            issue: Issue | None = await self._locate_issue(command.locate_title)
        else:
            issue = await self._store.get_issue(command.issue_id)
        if issue is None:
            raise NotFoundError("Issue not found")
        await self._store.delete_issue(issue.id)
        return ToolResult.ok(f'Issue #{issue.number} "{issue.title}" has been deleted successfully.')

    async def _create_project(self, command: CreateProjectCommand) -> ToolResult:
        project = await self._store.create_project(command)
        return ToolResult.ok(
            f'Project "{project.name}" has been created successfully.',
            project=project.model_dump(mode="json", include={"id", "name", "key", "description"}),
        )

    async def _update_project(self, command: UpdateProjectCommand) -> ToolResult:
        project = await self._store.update_project(command)
        if project is None:
            raise NotFoundError("Project not found")
        return ToolResult.ok(
            f'Project "{project.name}" has been updated successfully.',
            project=project.model_dump(mode="json", include={"id", "name", "key", "status"}),
        )

    async def _delete_project(self, command: DeleteProjectCommand) -> ToolResult:
        await self._store.delete_project(command.project_id)
        return ToolResult.ok(f'Project "{command.name or command.project_id}" has been deleted successfully.')

    async def _invite_member(self, command: InviteMemberCommand) -> ToolResult:
        existing = await self._store.find_invitation(command.email)
        if existing is not None and existing.status == "pending":
            raise ValidationError("Invitation already sent to this email")
        expires_at = datetime.now(timezone.utc) + INVITATION_TTL
        await self._store.create_invitation(command.email, command.role, expires_at)
        return ToolResult.ok(f"Invitation sent to {command.email}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _context(self, context: TeamContext | None) -> TeamContext:
        return context if context is not None else await self._store.get_team_context()

    async def _list_issues(self, args: ListIssuesArgs, context: TeamContext | None) -> ToolResult:
        issues = await self._store.list_issues()
        limited = issues[: args.limit] if args.limit else issues
        if len(limited) == len(issues):
            message = f"Found all {len(issues)} issues"
        else:
            message = f"Showing {len(limited)} of {len(issues)} total issues"
        return ToolResult.ok(
            message,
            issues=[_issue_data(i) for i in limited],
            count=len(limited),
            total=len(issues),
        )

    async def _get_issue(self, args: GetIssueArgs, context: TeamContext | None) -> ToolResult:
        if args.issue_id is None:
            raise ValidationError("Missing required information: issueId.", missing=["issueId"])
        issue = await self._store.get_issue(args.issue_id)
        if issue is None:
            raise NotFoundError("Issue not found")
        return ToolResult.ok(issue=_issue_data(issue, _ISSUE_SUMMARY | {"labels"}))

    async def _list_projects(self, args: ReadArgs, context: TeamContext | None) -> ToolResult:
        context = await self._context(context)
        return ToolResult.ok(
            projects=[
                p.model_dump(mode="json", include={"id", "name", "key", "description", "status", "issue_count"})
                for p in context.projects
            ]
        )

    async def _list_team_members(self, args: ReadArgs, context: TeamContext | None) -> ToolResult:
        context = await self._context(context)
        return ToolResult.ok(members=[m.model_dump(mode="json") for m in context.members])

    async def _get_team_stats(self, args: ReadArgs, context: TeamContext | None) -> ToolResult:
        stats = await self._store.team_stats()
        return ToolResult.ok(stats=stats.model_dump())
