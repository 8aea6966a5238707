"""
Exceptions raised by the data layer.
"""

from __future__ import annotations


class PassItError(Exception):
    """Base class for data layer errors."""


class NotFoundError(PassItError):
    """A requested document does not exist."""


class NotLoggedInError(PassItError):
    """The operation needs a signed-in user."""

    def __init__(self, message: str = "Not logged in"):
        super().__init__(message)


class AuthError(PassItError):
    """An authentication call was rejected by the backend."""

    def __init__(self, code: str, message: str | None = None):
        self.code = code
        super().__init__(message or code)
