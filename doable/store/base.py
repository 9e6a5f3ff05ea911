"""Abstract base class for team data stores."""

from abc import ABC, abstractmethod
from datetime import datetime

from doable.commands import CreateIssueCommand, CreateProjectCommand, UpdateIssueCommand, UpdateProjectCommand
from doable.models import Invitation, Issue, Project, TeamContext, TeamStats


class TeamStore(ABC):
    """CRUD access to one team's data. Mutations take resolved identifiers only."""

    team_id: str

    @abstractmethod
    async def get_team_context(self) -> TeamContext: ...

    @abstractmethod
    async def list_issues(self) -> list[Issue]: ...

    @abstractmethod
    async def get_issue(self, issue_id: str) -> Issue | None: ...

    @abstractmethod
    async def create_issue(self, command: CreateIssueCommand) -> Issue: ...

    @abstractmethod
    async def update_issue(self, issue_id: str, command: UpdateIssueCommand) -> Issue | None: ...

    @abstractmethod
    async def delete_issue(self, issue_id: str) -> None: ...

    @abstractmethod
    async def create_project(self, command: CreateProjectCommand) -> Project: ...

    @abstractmethod
    async def update_project(self, command: UpdateProjectCommand) -> Project | None: ...

    @abstractmethod
    async def delete_project(self, project_id: str) -> None: ...

    @abstractmethod
    async def find_invitation(self, email: str) -> Invitation | None: ...

    @abstractmethod
    async def create_invitation(self, email: str, role: str, expires_at: datetime) -> Invitation: ...

    @abstractmethod
    async def team_stats(self) -> TeamStats: ...
