"""Error taxonomy for the search subsystem."""

from __future__ import annotations

from collections.abc import Sequence


class SearchError(Exception):
    """Base class for errors raised by research_search."""


class ValidationError(SearchError, ValueError):
    """Malformed query, pagination or filter input.

    ``errors`` lists each violated constraint so the API layer can surface
    them without re-parsing the message.
    """

    def __init__(self, message: str, errors: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors) if errors else [message]

    @classmethod
    def from_pydantic(cls, exc: Exception) -> ValidationError:
        details: list[str] = []
        for error in getattr(exc, "errors", list)():
            location = ".".join(str(part) for part in error.get("loc", ()))
            message = error.get("msg", "invalid value")
            details.append(f"{location}: {message}" if location else message)
        return cls("Invalid search parameters", details or [str(exc)])


class IndexBuildError(SearchError):
    """The data provider failed during a build or refresh."""


class IndexUninitializedWarning(UserWarning):
    """A query ran before the index was ever built; it returned no results."""
