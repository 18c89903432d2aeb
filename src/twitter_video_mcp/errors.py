"""Failure taxonomy shared by the scraper, the cache and the video query.

Every component raises :class:`TwitterFailure` tagged with a :class:`FailureKind`.
Only the session protocol turns a kind into a user-facing signal.
"""

from __future__ import annotations

from enum import StrEnum


class FailureKind(StrEnum):
    """Closed set of failure kinds."""

    TAB_NOT_FOUND = "TabNotFound"
    NOT_LOGGED_IN = "NotLoggedIn"
    APP_STRUCTURE_CHANGED = "AppStructureChanged"
    NETWORK = "Network"


class TwitterFailure(Exception):
    """A specifically-kinded failure of one scrape/query step."""

    def __init__(self, kind: FailureKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    def __repr__(self) -> str:
        return f"TwitterFailure({self.kind.value!r}, {self.message!r})"

    @classmethod
    def tab_not_found(cls, message: str = "No active tab matches the target site") -> "TwitterFailure":
        return cls(FailureKind.TAB_NOT_FOUND, message)

    @classmethod
    def not_logged_in(cls, message: str = "Log in to Twitter first") -> "TwitterFailure":
        return cls(FailureKind.NOT_LOGGED_IN, message)

    @classmethod
    def app_structure_changed(cls, message: str) -> "TwitterFailure":
        return cls(FailureKind.APP_STRUCTURE_CHANGED, message)

    @classmethod
    def network(cls, message: str) -> "TwitterFailure":
        return cls(FailureKind.NETWORK, message)
