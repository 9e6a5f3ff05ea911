"""Tests for doable.validator — required fields, clarifications and reference resolution."""

from typing import Any

import pytest

from doable.commands import (
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
from doable.errors import MultiMatchError, NotFoundError, ResolutionError
from doable.models import Priority, Project, ProjectStatus, TeamContext
from doable.validator import (
    STATUS_FIELD,
    Complete,
    Incomplete,
    ValidationVerdict,
    create_issue_clarification,
    locate_project,
    validate,
)

PRIORITIES = "low, medium, high, urgent, or none"
PROJECTS = "Web (web), Mobile App (mob)"


def _validate(command_type: CommandType, context: TeamContext, **arguments: Any) -> ValidationVerdict:
    return validate(command_type, parse_draft(command_type, arguments), context)


def _create_issue(context: TeamContext, **arguments: Any) -> ValidationVerdict:
    return _validate(CommandType.CREATE_ISSUE, context, **arguments)


class TestCreateIssue:
    def test_end_to_end_resolution(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, title="Fix bug", workflowState="todo", priority="high", project="web")
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, CreateIssueCommand)
        assert command.workflow_state_id == "ws1"
        assert command.project_id == "p1"
        assert command.priority == Priority.HIGH
        assert command.title == "Fix bug"

    def test_explicit_none_priority_is_complete(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, title="x", workflowState="Todo", priority="none", project="Web")
        assert isinstance(verdict, Complete)
        assert verdict.command.priority == Priority.NONE  # type: ignore[attr-defined]

    def test_priority_only_missing(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, title="x", workflowState="Todo", priority=None, project="Web")
        assert isinstance(verdict, Incomplete)
        assert verdict.missing == ("priority",)
        assert verdict.message == (
            f"To create this issue, I need to know the priority level. Please specify a priority: {PRIORITIES}."
        )
        assert "project" not in verdict.message

    def test_project_only_missing(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, title="x", workflowState="Todo", priority="low", project="undefined")
        assert isinstance(verdict, Incomplete)
        assert verdict.missing == ("project",)
        assert verdict.message == (
            "To create this issue, I need to know which project to add it to. "
            f"Available projects: {PROJECTS}. Please specify which project this issue should be added to."
        )

    def test_priority_and_project_missing(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, title="x", workflowState="Todo", priority=None, project=None)
        assert isinstance(verdict, Incomplete)
        assert verdict.message == (
            f"To create this issue, I need two things: (1) the priority level ({PRIORITIES}), "
            f"and (2) which project to add it to. Available projects: {PROJECTS}."
        )

    def test_priority_and_project_missing_without_projects(self, empty_snapshot: TeamContext) -> None:
        verdict = _create_issue(empty_snapshot, title="x", workflowState="Todo")
        assert isinstance(verdict, Incomplete)
        assert verdict.message.endswith("Please create a project first or specify an existing project.")

    def test_priority_with_other_fields(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, workflowState="Todo", project="Web")
        assert isinstance(verdict, Incomplete)
        assert verdict.missing == ("title", "priority")
        assert verdict.message == (
            "Missing required information: title, and priority. "
            f"Please provide this along with a priority level ({PRIORITIES}) to create the issue."
        )

    def test_project_with_other_fields(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, title="x", priority="low")
        assert isinstance(verdict, Incomplete)
        assert verdict.missing == (STATUS_FIELD, "project")
        assert verdict.message == (
            f"Missing required information: {STATUS_FIELD}, and project. "
            f"Please provide this along with a project. Available projects: {PROJECTS}."
        )

    def test_generic_missing(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, workflowState="Todo", priority="low", project="Web")
        assert isinstance(verdict, Incomplete)
        assert verdict.message == "Missing required information: title. Please provide this to create the issue."

    def test_generic_missing_plural(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(snapshot, priority="low", project="Web")
        assert isinstance(verdict, Incomplete)
        assert verdict.message == (
            f"Missing required information: title, {STATUS_FIELD}. Please provide these to create the issue."
        )

    def test_unknown_project_lists_alternatives(self, snapshot: TeamContext) -> None:
        with pytest.raises(ResolutionError) as exc_info:
            _create_issue(snapshot, title="x", workflowState="Todo", priority="low", project="xyz")
        assert exc_info.value.field == "project"
        assert str(exc_info.value) == (
            f'The project "xyz" was not found. Available projects: {PROJECTS}. '
            "Please specify a valid project name, key, or ID."
        )

    def test_unknown_project_without_projects(self, empty_snapshot: TeamContext) -> None:
        with pytest.raises(ResolutionError, match="Please create a project first"):
            _create_issue(empty_snapshot, title="x", workflowState="Todo", priority="low", project="P")

    def test_ambiguous_state(self, snapshot: TeamContext) -> None:
        with pytest.raises(ResolutionError) as exc_info:
            _create_issue(snapshot, title="x", workflowState="o", priority="low", project="Web")
        assert str(exc_info.value) == (
            'The workflow state "o" matches multiple workflow states: Done, In Progress, Todo. '
            "Please specify which one you mean."
        )

    def test_unknown_label(self, snapshot: TeamContext) -> None:
        with pytest.raises(ResolutionError) as exc_info:
            _create_issue(
                snapshot, title="x", workflowState="Todo", priority="low", project="Web", labelIds=["security"]
            )
        assert str(exc_info.value) == 'The label "security" was not found. Available labels: bug, feature.'

    def test_labels_and_assignee_resolved(self, snapshot: TeamContext) -> None:
        verdict = _create_issue(
            snapshot,
            title="x",
            workflowState="Todo",
            priority="low",
            project="Web",
            assigneeId="bob",
            labelIds=["Bug", "l2"],
        )
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, CreateIssueCommand)
        assert command.assignee_id == "u2"
        assert command.assignee_name == "Bob Jones"
        assert command.label_ids == ("l1", "l2")

    @pytest.mark.parametrize("token", ["unassigned", "null", "undefined", None])
    def test_unassigned_tokens_leave_assignee_empty(self, snapshot: TeamContext, token: str | None) -> None:
        verdict = _create_issue(
            snapshot, title="x", workflowState="Todo", priority="low", project="Web", assigneeId=token
        )
        assert isinstance(verdict, Complete)
        assert verdict.command.assignee_id is None  # type: ignore[attr-defined]

    def test_unknown_assignee(self, snapshot: TeamContext) -> None:
        with pytest.raises(ResolutionError, match='The team member "Carol" was not found'):
            _create_issue(snapshot, title="x", workflowState="Todo", priority="low", project="Web", assigneeId="Carol")


class TestCreateIssueClarification:
    def test_no_projects_hint_for_project_only(self, empty_snapshot: TeamContext) -> None:
        message = create_issue_clarification(["project"], empty_snapshot)
        assert message == (
            "To create this issue, I need to know which project to add it to. "
            "Please create a project first or specify an existing project."
        )


class TestUpdateIssue:
    def test_requires_id_or_title(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_ISSUE, snapshot, priority="low")
        assert isinstance(verdict, Incomplete)
        assert verdict.message == "Either issueId or title must be provided"

    def test_locate_by_title(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_ISSUE, snapshot, title="Login page broken", status="Done")
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, UpdateIssueCommand)
        assert command.issue_id is None
        assert command.locate_title == "Login page broken"
        assert command.workflow_state_id == "ws3"

    @pytest.mark.parametrize("token", ["unassigned", "null", None])
    def test_clear_assignee(self, snapshot: TeamContext, token: str | None) -> None:
        verdict = _validate(CommandType.UPDATE_ISSUE, snapshot, issueId="i10", assigneeId=token)
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, UpdateIssueCommand)
        assert command.clear_assignee is True
        assert command.assignee_id is None

    def test_assignee_untouched_when_omitted(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_ISSUE, snapshot, issueId="i10", newTitle="Renamed")
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, UpdateIssueCommand)
        assert command.clear_assignee is False
        assert command.title == "Renamed"

    def test_assign_member(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_ISSUE, snapshot, issueId="i10", assigneeId="Alice Smith")
        assert isinstance(verdict, Complete)
        assert verdict.command.assignee_id == "u1"  # type: ignore[attr-defined]

    def test_null_label_list_leaves_labels_alone(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_ISSUE, snapshot, issueId="i10", labelIds=["null"])
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, UpdateIssueCommand)
        assert command.label_ids is None

    def test_empty_label_list_clears_labels(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_ISSUE, snapshot, issueId="i10", labelIds=[])
        assert isinstance(verdict, Complete)
        assert verdict.command.label_ids == ()  # type: ignore[attr-defined]


class TestDeleteIssue:
    def test_requires_id_or_title(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.DELETE_ISSUE, snapshot)
        assert isinstance(verdict, Incomplete)
        assert verdict.message == "Either title or issueId must be provided"

    def test_id_wins_over_title(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.DELETE_ISSUE, snapshot, issueId="i10", title="whatever")
        assert isinstance(verdict, Complete)
        assert verdict.command == DeleteIssueCommand(issue_id="i10")


class TestCreateProject:
    def test_defaults(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.CREATE_PROJECT, snapshot, name="API", key="api")
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, CreateProjectCommand)
        assert command.color == "#6366f1"
        assert command.status == ProjectStatus.ACTIVE

    def test_missing_key(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.CREATE_PROJECT, snapshot, name="API")
        assert isinstance(verdict, Incomplete)
        assert verdict.message == "Missing required information: key. Please provide this to create the project."

    def test_lead_resolved(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.CREATE_PROJECT, snapshot, name="API", key="api", leadId="alice")
        assert isinstance(verdict, Complete)
        assert verdict.command.lead_id == "u1"  # type: ignore[attr-defined]


class TestUpdateProject:
    def test_locate_by_name(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_PROJECT, snapshot, name="web", newName="Website", status="completed")
        assert isinstance(verdict, Complete)
        command = verdict.command
        assert isinstance(command, UpdateProjectCommand)
        assert command.project_id == "p1"
        assert command.name == "Website"
        assert command.status == ProjectStatus.COMPLETED

    def test_unknown_id_passes_through(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_PROJECT, snapshot, projectId="p_new", color="#000000")
        assert isinstance(verdict, Complete)
        assert verdict.command.project_id == "p_new"  # type: ignore[attr-defined]

    def test_requires_id_or_name(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.UPDATE_PROJECT, snapshot, color="#000000")
        assert isinstance(verdict, Incomplete)
        assert verdict.message == "Either projectId or name must be provided"


class TestDeleteProject:
    def test_locate_by_name(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.DELETE_PROJECT, snapshot, name="Mobile")
        assert isinstance(verdict, Complete)
        assert verdict.command == DeleteProjectCommand(project_id="p2", name="Mobile App")

    def test_not_found(self, snapshot: TeamContext) -> None:
        with pytest.raises(NotFoundError, match='No project found with name "Backend"'):
            _validate(CommandType.DELETE_PROJECT, snapshot, name="Backend")


class TestLocateProject:
    def test_exact_beats_substring(self) -> None:
        projects = (Project(id="a", name="Web", key="web"), Project(id="b", name="Web Admin", key="wa"))
        assert locate_project("web", projects).id == "a"

    def test_multi_match(self) -> None:
        projects = (Project(id="a", name="Web", key="web"), Project(id="b", name="Web Admin", key="wa"))
        with pytest.raises(MultiMatchError) as exc_info:
            locate_project("we", projects)
        assert exc_info.value.matches == ["Web (web)", "Web Admin (wa)"]
        assert str(exc_info.value) == (
            'Multiple projects found matching "we": Web (web), Web Admin (wa). Please be more specific.'
        )


class TestInviteMember:
    def test_default_role(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.INVITE_MEMBER, snapshot, email="new@example.com")
        assert isinstance(verdict, Complete)
        assert verdict.command == InviteMemberCommand(email="new@example.com", role="developer")

    def test_missing_email(self, snapshot: TeamContext) -> None:
        verdict = _validate(CommandType.INVITE_MEMBER, snapshot, role="admin")
        assert isinstance(verdict, Incomplete)
        assert verdict.missing == ("email",)
        assert verdict.message == "Missing required information: email. Please provide this to send the invitation."
