"""Resolve free-text entity references against a TeamContext snapshot.

The conversational model refers to projects, workflow states, members and
labels by whatever the user typed: an id, a name, a project key, or a
fragment of a name. ``resolve`` turns such a reference into exactly one
identifier, or explains why it could not.

Matching order:

1. exact id
2. exact case-insensitive name (or project key)
3. case-insensitive substring, in either direction

Several hits at the same step are ambiguous; the caller must ask the user
rather than pick one.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from doable.models import Member

MAX_CANDIDATES = 10

# Serialization artifacts the model emits for "no value".
ABSENT_TOKENS = frozenset({"", "null", "undefined"})
UNASSIGNED_TOKENS = frozenset({"unassigned", "null", "undefined"})


class Resolvable(Protocol):
    @property
    def id(self) -> str: ...

    @property
    def name(self) -> str: ...

    @property
    def label(self) -> str: ...


@dataclass(frozen=True, slots=True)
class ById:
    id: str


@dataclass(frozen=True, slots=True)
class ByName:
    text: str


EntityReference = ById | ByName


@dataclass(frozen=True, slots=True)
class Candidate:
    id: str
    label: str


@dataclass(frozen=True, slots=True)
class Resolved:
    id: str
    label: str


@dataclass(frozen=True, slots=True)
class Ambiguous:
    query: str
    candidates: tuple[Candidate, ...]


@dataclass(frozen=True, slots=True)
class NotFound:
    query: str


Resolution = Resolved | Ambiguous | NotFound


class NoAssignee:
    """Explicit request to clear the assignee."""

    _instance: "NoAssignee | None" = None

    def __new__(cls) -> "NoAssignee":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_ASSIGNEE"


NO_ASSIGNEE = NoAssignee()


def is_absent(value: Any) -> bool:
    """True for None and for the strings the model uses to mean None."""
    if value is None:
        return True
    return isinstance(value, str) and value.strip().lower() in ABSENT_TOKENS


def reference_from(value: str) -> EntityReference:
    """Wrap a raw tool argument. Free text may still be an id; ByName checks ids first."""
    return ByName(value)


def _exact_names(item: Resolvable) -> set[str]:
    names = {item.name.casefold()}
    key = getattr(item, "key", None)
    if key:
        names.add(key.casefold())
    return names


def _pick(query: str, matches: list[Resolvable], limit: int) -> Resolution:
    if len(matches) == 1:
        return Resolved(id=matches[0].id, label=matches[0].label)
    ordered = sorted(matches, key=lambda item: item.name.casefold())[:limit]
    return Ambiguous(query=query, candidates=tuple(Candidate(id=i.id, label=i.label) for i in ordered))


def resolve(
    reference: EntityReference,
    collection: Iterable[Resolvable],
    *,
    limit: int = MAX_CANDIDATES,
) -> Resolution:
    items = list(collection)

    if isinstance(reference, ById):
        ident = reference.id.strip()
        match = next((i for i in items if ident and i.id == ident), None)
        if match is None:
            return NotFound(query=reference.id)
        return Resolved(id=match.id, label=match.label)

    text = reference.text.strip()
    if not text:
        return NotFound(query=reference.text)

    by_id = next((i for i in items if i.id == text), None)
    if by_id is not None:
        return Resolved(id=by_id.id, label=by_id.label)

    needle = text.casefold()
    exact = [i for i in items if needle in _exact_names(i)]
    if exact:
        return _pick(text, exact, limit)

    partial = []
    for item in items:
        name = item.name.casefold()
        if name and (needle in name or name in needle):
            partial.append(item)
    if not partial:
        return NotFound(query=text)
    return _pick(text, partial, limit)


def resolve_assignee(value: str | None, members: Iterable[Member]) -> Resolution | NoAssignee:
    """Resolve an assignee argument; the unassigned spellings clear it instead of failing."""
    if is_absent(value) or value.strip().lower() in UNASSIGNED_TOKENS:
        return NO_ASSIGNEE
    return resolve(reference_from(value), members)
