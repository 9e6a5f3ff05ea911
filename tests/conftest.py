"""Shared test fixtures."""

from collections.abc import Callable
from datetime import datetime

import pytest

import doable.settings as settings_module
from doable.commands import CreateIssueCommand, CreateProjectCommand, UpdateIssueCommand, UpdateProjectCommand
from doable.models import (
    Invitation,
    Issue,
    Label,
    Member,
    Project,
    TeamContext,
    TeamStats,
    WorkflowState,
    WorkflowStateType,
)
from doable.store.base import TeamStore


@pytest.fixture(autouse=True)
def reset_lru_cache():
    settings_module._load_toml.cache_clear()
    yield
    settings_module._load_toml.cache_clear()


@pytest.fixture
def snapshot() -> TeamContext:
    return TeamContext(
        team_id="team_1",
        projects=(
            Project(id="p1", name="Web", key="web", issue_count=2),
            Project(id="p2", name="Mobile App", key="mob"),
        ),
        workflow_states=(
            WorkflowState(id="ws1", name="Todo", type=WorkflowStateType.UNSTARTED),
            WorkflowState(id="ws2", name="In Progress", type=WorkflowStateType.STARTED),
            WorkflowState(id="ws3", name="Done", type=WorkflowStateType.COMPLETED),
        ),
        labels=(
            Label(id="l1", name="bug"),
            Label(id="l2", name="feature"),
        ),
        members=(
            Member(user_id="u1", user_name="Alice Smith", email="alice@example.com", role="admin"),
            Member(user_id="u2", user_name="Bob Jones", email="bob@example.com"),
        ),
    )


@pytest.fixture
def empty_snapshot() -> TeamContext:
    return TeamContext(team_id="team_1")


class FakeStore(TeamStore):
    """In-memory TeamStore that records every mutation it receives."""

    def __init__(self, context: TeamContext, issues: list[Issue] | None = None) -> None:
        self.team_id = context.team_id
        self.context = context
        self.issues: dict[str, Issue] = {i.id: i for i in issues or []}
        self.invitations: list[Invitation] = []
        self.calls: list[tuple[str, object]] = []
        self.context_fetches = 0
        self.fail_with: Exception | None = None
        self.context_error: Exception | None = None

    def _record(self, name: str, payload: object) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append((name, payload))

    async def get_team_context(self) -> TeamContext:
        self.context_fetches += 1
        if self.context_error is not None:
            raise self.context_error
        return self.context

    async def list_issues(self) -> list[Issue]:
        return list(self.issues.values())

    async def get_issue(self, issue_id: str) -> Issue | None:
        return self.issues.get(issue_id)

    async def create_issue(self, command: CreateIssueCommand) -> Issue:
        self._record("create_issue", command)
        number = len(self.issues) + 1
        issue = Issue(
            id=f"i{number}",
            number=number,
            title=command.title,
            description=command.description,
            priority=command.priority,
            project_id=command.project_id,
            workflow_state_id=command.workflow_state_id,
            assignee_id=command.assignee_id,
        )
        self.issues[issue.id] = issue
        return issue

    async def update_issue(self, issue_id: str, command: UpdateIssueCommand) -> Issue | None:
        self._record("update_issue", (issue_id, command))
        issue = self.issues.get(issue_id)
        if issue is None:
            return None
        updated = issue.model_copy(update={"title": command.title or issue.title})
        self.issues[issue_id] = updated
        return updated

    async def delete_issue(self, issue_id: str) -> None:
        self._record("delete_issue", issue_id)
        self.issues.pop(issue_id, None)

    async def create_project(self, command: CreateProjectCommand) -> Project:
        self._record("create_project", command)
        return Project(id="p_new", name=command.name, key=command.key, color=command.color, status=command.status)

    async def update_project(self, command: UpdateProjectCommand) -> Project | None:
        self._record("update_project", command)
        project = next((p for p in self.context.projects if p.id == command.project_id), None)
        if project is None:
            return None
        return project.model_copy(update={"name": command.name or project.name})

    async def delete_project(self, project_id: str) -> None:
        self._record("delete_project", project_id)

    async def find_invitation(self, email: str) -> Invitation | None:
        return next((i for i in self.invitations if i.email == email), None)

    async def create_invitation(self, email: str, role: str, expires_at: datetime) -> Invitation:
        self._record("create_invitation", (email, role, expires_at))
        invitation = Invitation(id=f"inv{len(self.invitations) + 1}", email=email, role=role, status="pending",
                                expires_at=expires_at)
        self.invitations.append(invitation)
        return invitation

    async def team_stats(self) -> TeamStats:
        return TeamStats(issues=len(self.issues), projects=len(self.context.projects),
                         members=len(self.context.members))


@pytest.fixture
def sample_issues() -> list[Issue]:
    return [
        Issue(id="i10", number=10, title="Login page broken", project_id="p1", project="Web",
              workflow_state_id="ws1", workflow_state="Todo", labels=["bug"]),
        Issue(id="i11", number=11, title="Login redirect loop", project_id="p1", project="Web"),
        Issue(id="i12", number=12, title="Dark mode", project_id="p2", project="Mobile App"),
    ]


@pytest.fixture
def store(snapshot: TeamContext, sample_issues: list[Issue]) -> FakeStore:
    return FakeStore(snapshot, sample_issues)


@pytest.fixture
def make_store():
    return FakeStore


class RecordingScheduler:
    """Collects scheduled refresh callbacks so tests can fire them on demand."""

    def __init__(self) -> None:
        self.pending: list[tuple[float, Callable[[], None]]] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> None:
        self.pending.append((delay, callback))

    @property
    def delays(self) -> list[float]:
        return [delay for delay, _ in self.pending]

    def run_all(self) -> None:
        pending, self.pending = sorted(self.pending, key=lambda p: p[0]), []
        for _, callback in pending:
            callback()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
