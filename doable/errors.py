"""Exceptions raised inside the assistant core.

ToolExecutor turns every DoableError into a failed ToolResult; none of them
should reach the conversational model as a traceback.
"""


class DoableError(Exception):
    """Base exception for assistant errors."""


class ValidationError(DoableError):
    """A required field is missing or a supplied value is malformed."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = missing or []
        super().__init__(message)


class ResolutionError(DoableError):
    """A named reference matched nothing, or more than one entity."""

    def __init__(self, field: str, value: str, message: str) -> None:
        self.field = field
        self.value = value
        super().__init__(message)


class NotFoundError(DoableError):
    """Locating an issue or project by title/name matched nothing."""


class MultiMatchError(DoableError):
    """Locating an issue or project by title/name matched several entities."""

    def __init__(self, query: str, matches: list[str], message: str) -> None:
        self.query = query
        self.matches = matches
        super().__init__(message)


class StoreError(DoableError):
    """The data store rejected or failed a call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)
