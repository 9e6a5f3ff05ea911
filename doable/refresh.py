"""Infer which views to refresh from the chat message stream.

The observer watches a chat session. When a turn completes it scans each
message it has not seen before for tool calls, either attached to the
message or guessed from its text, and signals the matching categories
(issues, projects, people) after a short settle delay. A final assistant
message also schedules a delayed refresh of everything, so a missed
inference still ends with a consistent UI.

Nothing here raises: an inference failure only costs precision.
"""

import asyncio
import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class RefreshCategory(str, Enum):
    ISSUES = "issues"
    PROJECTS = "projects"
    PEOPLE = "people"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


# Part types that carry a tool payload without naming the tool.
GENERIC_TOOL_PARTS = frozenset({"tool-call", "tool-result", "tool-invocation"})


class MessagePart(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = "text"
    text: str | None = None
    tool_name: str | None = Field(default=None, validation_alias=AliasChoices("toolName", "tool_name"))


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str | None = None
    role: str  # "user" | "assistant" | "system"
    parts: tuple[MessagePart, ...] = ()

    @property
    def text(self) -> str:
        return " ".join(p.text or "" for p in self.parts if p.type == "text")

    @property
    def tool_names(self) -> list[str]:
        names: list[str] = []
        for part in self.parts:
            name = part.tool_name
            # UI streams tag tool parts as "tool-<name>"
            if name is None and part.type.startswith("tool-") and part.type not in GENERIC_TOOL_PARTS:
                name = part.type.removeprefix("tool-")
            if name and name not in names:
                names.append(name)
        return names


# ---------------------------------------------------------------------------
# Inference rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class KeywordRule:
    """Every group must contribute at least one keyword found in the text."""

    groups: tuple[frozenset[str], ...]
    tools: tuple[str, ...]

    def matches(self, text: str) -> bool:
        return all(any(keyword in text for keyword in group) for group in self.groups)


def _rule(*groups: Iterable[str], tools: Iterable[str]) -> KeywordRule:
    return KeywordRule(groups=tuple(frozenset(g) for g in groups), tools=tuple(tools))


_PROJECT_MEMBER = ("member", "added", "removed")

# Bulk variants ride along so one signal covers single and multi-entity tools.
KEYWORD_RULES: tuple[KeywordRule, ...] = (
    _rule(("issue", "#", "✔"), ("created",), tools=("createIssue", "createIssues")),
    _rule(("issue",), ("updated",), tools=("updateIssue", "updateIssues")),
    _rule(("issue",), ("deleted",), tools=("deleteIssue", "deleteIssues")),
    _rule(("project",), ("created", "successfully", "✔"), tools=("createProject", "createProjects")),
    _rule(("project",), ("updated",), tools=("updateProject",)),
    _rule(("project",), ("deleted", "removed"), tools=("deleteProject",)),
    _rule(("project",), _PROJECT_MEMBER, ("added", "add"), tools=("addProjectMember",)),
    _rule(("project",), _PROJECT_MEMBER, ("removed", "remove", "delete"), tools=("removeProjectMember",)),
    _rule(("project",), _PROJECT_MEMBER, ("list", "show", "members"), tools=("listProjectMembers",)),
    _rule(("invited", "invitation", "team member"), tools=("inviteTeamMember", "inviteTeamMembers")),
    _rule(("invitation",), ("revoked", "cancelled", "removed", "deleted"), tools=("revokeInvitation",)),
    _rule(("team member",), ("removed", "deleted"), tools=("removeTeamMember",)),
)

TOOL_CATEGORIES: dict[str, RefreshCategory] = {
    "createIssue": RefreshCategory.ISSUES,
    "createIssues": RefreshCategory.ISSUES,
    "updateIssue": RefreshCategory.ISSUES,
    "updateIssues": RefreshCategory.ISSUES,
    "deleteIssue": RefreshCategory.ISSUES,
    "deleteIssues": RefreshCategory.ISSUES,
    "createProject": RefreshCategory.PROJECTS,
    "createProjects": RefreshCategory.PROJECTS,
    "updateProject": RefreshCategory.PROJECTS,
    "deleteProject": RefreshCategory.PROJECTS,
    "addProjectMember": RefreshCategory.PROJECTS,
    "removeProjectMember": RefreshCategory.PROJECTS,
    "inviteTeamMember": RefreshCategory.PEOPLE,
    "inviteTeamMembers": RefreshCategory.PEOPLE,
    "revokeInvitation": RefreshCategory.PEOPLE,
    "removeTeamMember": RefreshCategory.PEOPLE,
}

SUCCESS_INDICATORS = ("created", "successfully", "updated", "deleted", "removed", "revoked", "cancelled", "✔")


def infer_tool_names(message: ChatMessage) -> list[str]:
    """Explicit tool names on the message plus those the keyword rules infer from its text."""
    names = message.tool_names
    text = message.text.casefold()
    if not text:
        return names
    for rule in KEYWORD_RULES:
        if rule.matches(text):
            names.extend(t for t in rule.tools if t not in names)
    return names


def categories_for(tool_names: Iterable[str]) -> set[RefreshCategory]:
    return {TOOL_CATEGORIES[name] for name in tool_names if name in TOOL_CATEGORIES}


def _ordered(categories: Iterable[RefreshCategory]) -> list[RefreshCategory]:
    wanted = set(categories)
    return [c for c in RefreshCategory if c in wanted]


# ---------------------------------------------------------------------------
# Signal bus
# ---------------------------------------------------------------------------

Listener = Callable[[], None]


class RefreshBus:
    """Fire-and-forget refresh signals. Signals with no listener are dropped."""

    def __init__(self) -> None:
        self._listeners: dict[RefreshCategory, list[Listener]] = {c: [] for c in RefreshCategory}

    def subscribe(self, category: RefreshCategory, listener: Listener) -> Callable[[], None]:
        self._listeners[category].append(listener)
        return lambda: self.unsubscribe(category, listener)

    def unsubscribe(self, category: RefreshCategory, listener: Listener) -> None:
        if listener in self._listeners[category]:
            self._listeners[category].remove(listener)

    def emit(self, categories: Iterable[RefreshCategory]) -> None:
        for category in _ordered(categories):
            listeners = list(self._listeners[category])
            if not listeners:
                logger.debug("refresh-%s dropped, no listeners", category.value)
                continue
            logger.debug("refresh-%s -> %d listener(s)", category.value, len(listeners))
            for listener in listeners:
                try:
                    listener()
                except Exception:
                    logger.exception("refresh-%s listener failed", category.value)


# ---------------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------------

Scheduler = Callable[[float, Callable[[], None]], Any]


def default_scheduler(delay: float, callback: Callable[[], None]) -> Any:
    """Run ``callback`` after ``delay`` seconds on the running loop, or on a timer thread."""
    try:
        return asyncio.get_running_loop().call_later(delay, callback)
    except RuntimeError:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class ObserverState(str, Enum):
    IDLE = "idle"
    AWAITING_RESPONSE = "awaiting_response"
    READY = "ready"


class RefreshObserver:
    def __init__(
        self,
        bus: RefreshBus,
        *,
        settle_delay: float = 0.4,
        fallback_delay: float = 0.7,
        ready_delay: float = 0.5,
        schedule: Scheduler | None = None,
    ) -> None:
        self._bus = bus
        self._settle_delay = settle_delay
        self._fallback_delay = fallback_delay
        self._ready_delay = ready_delay
        self._schedule_fn = schedule or default_scheduler
        self._state = ObserverState.IDLE
        self._processed: set[str] = set()

    @property
    def state(self) -> ObserverState:
        return self._state

    @property
    def horizon(self) -> float:
        """Longest delay any scheduled refresh can wait."""
        return max(self._settle_delay, self._fallback_delay, self._ready_delay)

    def is_processed(self, message_id: str) -> bool:
        return message_id in self._processed

    def message_sent(self) -> None:
        self._state = ObserverState.AWAITING_RESPONSE

    def turn_completed(self, messages: Sequence[ChatMessage]) -> None:
        if self._state is not ObserverState.AWAITING_RESPONSE:
            logger.debug("turn_completed while %s, ignoring", self._state.value)
            return
        self._state = ObserverState.READY
        try:
            self._process_turn(messages)
        except Exception:
            logger.exception("Refresh inference failed")

    def messages_changed(self, messages: Sequence[ChatMessage]) -> None:
        """Catch an assistant message that lands after the turn already completed."""
        if self._state is not ObserverState.READY or not messages:
            return
        try:
            last = messages[-1]
            if last.role != "assistant" or not last.id or last.id in self._processed:
                return
            self._processed.add(last.id)
            text = last.text.casefold()
            if any(indicator in text for indicator in SUCCESS_INDICATORS):
                self._schedule(self._ready_delay, list(RefreshCategory))
        except Exception:
            logger.exception("Refresh inference failed")

    def _process_turn(self, messages: Sequence[ChatMessage]) -> None:
        categories: set[RefreshCategory] = set()
        for message in messages:
            if not message.id or message.id in self._processed:
                continue
            try:
                categories |= categories_for(infer_tool_names(message))
            except Exception:
                logger.exception("Could not infer tools for message %s", message.id)
            self._processed.add(message.id)

        if categories:
            self._schedule(self._settle_delay, _ordered(categories))
        if messages and messages[-1].role == "assistant":
            self._schedule(self._fallback_delay, list(RefreshCategory))

    def _schedule(self, delay: float, categories: list[RefreshCategory]) -> None:
        try:
            self._schedule_fn(delay, lambda: self._emit(categories))
        except Exception:
            logger.exception("Could not schedule refresh of %s", ", ".join(c.value for c in categories))

    def _emit(self, categories: list[RefreshCategory]) -> None:
        try:
            self._bus.emit(categories)
        except Exception:
            logger.exception("Refresh dispatch failed")
