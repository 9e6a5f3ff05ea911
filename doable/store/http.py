"""Doable REST API store."""

import asyncio
import logging
from datetime import datetime
from typing import Any

import httpx

from doable.commands import CreateIssueCommand, CreateProjectCommand, UpdateIssueCommand, UpdateProjectCommand
from doable.errors import StoreError
from doable.models import (
    Invitation,
    Issue,
    Label,
    Member,
    Project,
    TeamContext,
    TeamStats,
    WorkflowState,
)
from doable.settings import DoableSettings
from doable.store.base import TeamStore

logger = logging.getLogger(__name__)


class HttpTeamStore(TeamStore):
    def __init__(self, settings: DoableSettings) -> None:
        if not settings.team_id:
            raise RuntimeError("team_id is required")
        self.team_id = settings.team_id
        self._base_url = settings.api_url.rstrip("/")
        self._timeout = settings.timeout
        self._headers = {"Accept": "application/json"}
        if settings.api_token:
            self._headers["Authorization"] = f"Bearer {settings.api_token.get_secret_value()}"

    def _team_path(self, path: str = "") -> str:
        return f"{self._base_url}/teams/{self.team_id}{path}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        body: dict | None = None,
        allow_missing: bool = False,
    ) -> Any:
        url = self._team_path(path)
        logger.debug("%s %s", method, url)
        try:
            async with httpx.AsyncClient(headers=self._headers, timeout=self._timeout) as client:
                response = await client.request(method, url, params=params, json=body)
        except httpx.HTTPError as exc:
            raise StoreError(f"Doable API unreachable: {exc}") from exc

        if response.status_code == 404 and allow_missing:
            return None
        if response.status_code == 401:
            raise StoreError("Doable API returned 401. Check api_token for the active profile.", status_code=401)
        if response.is_error:
            raise StoreError(self._error_message(response), status_code=response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return f"Doable API error: HTTP {response.status_code}"

    # ------------------------------------------------------------------
    # Node mapping
    # ------------------------------------------------------------------

    def _project_from_node(self, node: dict) -> Project:
        return Project(
            id=node["id"],
            name=node["name"],
            key=node["key"],
            status=node.get("status") or "active",
            color=node.get("color"),
            description=node.get("description"),
            issue_count=node.get("_count", {}).get("issues", 0),
        )

    def _member_from_node(self, node: dict) -> Member:
        return Member(
            user_id=node["userId"],
            user_name=node["userName"],
            email=node.get("userEmail"),
            role=node.get("role") or "developer",
        )

    def _issue_from_node(self, node: dict) -> Issue:
        project = node.get("project")
        state = node.get("workflowState")
        labels = []
        for entry in node.get("labels") or []:
            # Issue labels arrive either flat or wrapped in the join row.
            label = entry.get("label", entry) if isinstance(entry, dict) else {"name": entry}
            labels.append(label["name"])
        return Issue(
            id=node["id"],
            number=node["number"],
            title=node["title"],
            description=node.get("description"),
            priority=node.get("priority") or "none",
            project_id=node.get("projectId"),
            project=project.get("name") if isinstance(project, dict) else project,
            workflow_state_id=node.get("workflowStateId"),
            workflow_state=state.get("name") if isinstance(state, dict) else state,
            assignee_id=node.get("assigneeId"),
            assignee=node.get("assignee"),
            labels=labels,
            estimate=node.get("estimate"),
        )

    def _invitation_from_node(self, node: dict) -> Invitation:
        return Invitation(
            id=node["id"],
            email=node["email"],
            role=node.get("role") or "developer",
            status=node["status"],
            expires_at=node.get("expiresAt"),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_team_context(self) -> TeamContext:
        projects, states, labels, members = await asyncio.gather(
            self._request("GET", "/projects"),
            self._request("GET", "/workflow-states"),
            self._request("GET", "/labels"),
            self._request("GET", "/members"),
        )
        return TeamContext(
            team_id=self.team_id,
            projects=tuple(self._project_from_node(n) for n in projects),
            workflow_states=tuple(WorkflowState(id=n["id"], name=n["name"], type=n["type"]) for n in states),
            labels=tuple(Label(id=n["id"], name=n["name"]) for n in labels),
            members=tuple(self._member_from_node(n) for n in members),
        )

    async def list_issues(self) -> list[Issue]:
        nodes = await self._request("GET", "/issues")
        return [self._issue_from_node(n) for n in nodes]

    async def get_issue(self, issue_id: str) -> Issue | None:
        node = await self._request("GET", f"/issues/{issue_id}", allow_missing=True)
        return self._issue_from_node(node) if node else None

    async def find_invitation(self, email: str) -> Invitation | None:
        nodes = await self._request("GET", "/invitations", params={"email": email})
        wanted = email.strip().casefold()
        matches = [n for n in nodes if str(n.get("email", "")).strip().casefold() == wanted]
        if not matches:
            return None
        # A pending invitation outranks older revoked or expired ones.
        node = next((n for n in matches if n.get("status") == "pending"), matches[0])
        return self._invitation_from_node(node)

    async def team_stats(self) -> TeamStats:
        data = await self._request("GET", "/stats")
        return TeamStats(issues=data["issues"], projects=data["projects"], members=data["members"])

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_issue(self, command: CreateIssueCommand) -> Issue:
        body: dict = {
            "title": command.title,
            "projectId": command.project_id,
            "workflowStateId": command.workflow_state_id,
            "priority": command.priority.value,
        }
        if command.description:
            body["description"] = command.description
        if command.assignee_id:
            body["assigneeId"] = command.assignee_id
            body["assignee"] = command.assignee_name
        if command.estimate is not None:
            body["estimate"] = command.estimate
        if command.label_ids:
            body["labelIds"] = list(command.label_ids)
        node = await self._request("POST", "/issues", body=body)
        return self._issue_from_node(node)

    async def update_issue(self, issue_id: str, command: UpdateIssueCommand) -> Issue | None:
        body: dict = {}
        if command.title:
            body["title"] = command.title
        if command.description is not None:
            body["description"] = command.description
        if command.workflow_state_id:
            body["workflowStateId"] = command.workflow_state_id
        if command.clear_assignee:
            body["assigneeId"] = None
            body["assignee"] = None
        elif command.assignee_id:
            body["assigneeId"] = command.assignee_id
            body["assignee"] = command.assignee_name
        if command.priority is not None:
            body["priority"] = command.priority.value
        if command.estimate is not None:
            body["estimate"] = command.estimate
        if command.label_ids is not None:
            body["labelIds"] = list(command.label_ids)
        node = await self._request("PATCH", f"/issues/{issue_id}", body=body, allow_missing=True)
        return self._issue_from_node(node) if node else None

    async def delete_issue(self, issue_id: str) -> None:
        await self._request("DELETE", f"/issues/{issue_id}")

    async def create_project(self, command: CreateProjectCommand) -> Project:
        body: dict = {
            "name": command.name,
            "key": command.key,
            "color": command.color,
            "status": command.status.value,
        }
        if command.description:
            body["description"] = command.description
        if command.icon:
            body["icon"] = command.icon
        if command.lead_id:
            body["leadId"] = command.lead_id
            body["lead"] = command.lead_name
        node = await self._request("POST", "/projects", body=body)
        return self._project_from_node(node)

    async def update_project(self, command: UpdateProjectCommand) -> Project | None:
        body: dict = {}
        if command.name:
            body["name"] = command.name
        if command.description is not None:
            body["description"] = command.description
        if command.status is not None:
            body["status"] = command.status.value
        if command.color:
            body["color"] = command.color
        if command.icon:
            body["icon"] = command.icon
        if command.lead_id:
            body["leadId"] = command.lead_id
            body["lead"] = command.lead_name
        node = await self._request("PATCH", f"/projects/{command.project_id}", body=body, allow_missing=True)
        return self._project_from_node(node) if node else None

    async def delete_project(self, project_id: str) -> None:
        await self._request("DELETE", f"/projects/{project_id}")

    async def create_invitation(self, email: str, role: str, expires_at: datetime) -> Invitation:
        body = {"email": email, "role": role, "expiresAt": expires_at.isoformat()}
        node = await self._request("POST", "/invitations", body=body)
        return self._invitation_from_node(node)
