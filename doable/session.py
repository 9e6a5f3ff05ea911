"""One chat session: tool execution, message history, refresh observer and view cache."""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from functools import partial
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from doable.cache import ResponseCache
from doable.errors import DoableError
from doable.executor import ToolExecutor
from doable.models import Issue, TeamContext, ToolResult
from doable.refresh import ChatMessage, MessagePart, RefreshBus, RefreshCategory, RefreshObserver, Scheduler
from doable.settings import DoableSettings
from doable.store.base import TeamStore

logger = logging.getLogger(__name__)

# View cache keys each refresh category invalidates.
CACHE_KEYS: dict[RefreshCategory, tuple[str, ...]] = {
    RefreshCategory.ISSUES: ("issues", "stats"),
    RefreshCategory.PROJECTS: ("context", "stats"),
    RefreshCategory.PEOPLE: ("context", "stats"),
}


class ToolCall(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(validation_alias=AliasChoices("name", "toolName", "tool"))
    arguments: dict[str, Any] = Field(default={}, validation_alias=AliasChoices("arguments", "args", "input"))


@dataclass(frozen=True, slots=True)
class TurnResult:
    results: list[ToolResult]
    reply: str


def _new_id() -> str:
    return uuid.uuid4().hex


class ChatSession:
    def __init__(
        self,
        store: TeamStore,
        *,
        settle_delay: float = 0.4,
        fallback_delay: float = 0.7,
        ready_delay: float = 0.5,
        cache_ttl: float = 300.0,
        schedule: Scheduler | None = None,
    ) -> None:
        self.store = store
        self.bus = RefreshBus()
        self.cache = ResponseCache(ttl=cache_ttl)
        self.observer = RefreshObserver(
            self.bus,
            settle_delay=settle_delay,
            fallback_delay=fallback_delay,
            ready_delay=ready_delay,
            schedule=schedule,
        )
        self.executor = ToolExecutor(store)
        self.messages: list[ChatMessage] = []
        self._unsubscribers = [self.bus.subscribe(c, partial(self._evict, c)) for c in RefreshCategory]

    @classmethod
    def from_settings(
        cls,
        store: TeamStore,
        settings: DoableSettings,
        schedule: Scheduler | None = None,
    ) -> "ChatSession":
        return cls(
            store,
            settle_delay=settings.settle_delay,
            fallback_delay=settings.fallback_delay,
            ready_delay=settings.ready_delay,
            cache_ttl=settings.cache_ttl,
            schedule=schedule,
        )

    def _evict(self, category: RefreshCategory) -> None:
        for key in CACHE_KEYS[category]:
            self.cache.delete(key)

    # ------------------------------------------------------------------
    # Cached views
    # ------------------------------------------------------------------

    async def team_context(self) -> TeamContext:
        context = self.cache.get("context")
        if context is None:
            context = await self.store.get_team_context()
            self.cache.set("context", context)
        return context

    async def issues(self) -> list[Issue]:
        issues = self.cache.get("issues")
        if issues is None:
            issues = await self.store.list_issues()
            self.cache.set("issues", issues)
        return issues

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def run_turn(
        self,
        user_text: str,
        tool_calls: Iterable[ToolCall] = (),
        reply: str | None = None,
    ) -> TurnResult:
        """Record the user message, run the model's tool calls, then close the turn.

        ``reply`` is the assistant's text; without one the tool outcomes are relayed as-is.
        """
        self.messages.append(ChatMessage(id=_new_id(), role="user", parts=(MessagePart(text=user_text),)))
        self.observer.message_sent()

        calls = list(tool_calls)
        results: list[ToolResult] = []
        parts: list[MessagePart] = []
        if calls:
            # One snapshot per turn; later passes re-fetch.
            context: TeamContext | None = None
            failure: ToolResult | None = None
            try:
                context = await self.store.get_team_context()
            except DoableError as exc:
                logger.warning("Team context unavailable: %s", exc)
                failure = ToolResult.fail(str(exc), type(exc).__name__)
            else:
                self.cache.set("context", context)
            for call in calls:
                if failure is not None:
                    result = failure
                else:
                    result = await self.executor.execute(call.name, call.arguments, context)
                logger.info("%s -> %s", call.name, "ok" if result.success else result.error)
                results.append(result)
                parts.append(MessagePart(type="tool-call", tool_name=call.name))

        if reply is None:
            reply = " ".join(r.message or r.error or "" for r in results).strip()
        parts.append(MessagePart(text=reply))
        self.messages.append(ChatMessage(id=_new_id(), role="assistant", parts=tuple(parts)))

        self.observer.turn_completed(self.messages)
        return TurnResult(results=results, reply=reply)

    def dispose(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.cache.clear()
