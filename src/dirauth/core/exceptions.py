"""
dirauth Exception Types

Custom exceptions for directory authentication errors.

Fatal errors (ConfigError, ConnectError) are raised while an authenticator
is being set up. Per-attempt errors (BindFailure, SearchFailure,
NotFoundError) are carried inside ``returns`` Failure containers and are
never raised out of ``authenticate``.
"""

from typing import Optional


class DirectoryAuthError(Exception):
    """Base exception for all dirauth errors."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigError(DirectoryAuthError):
    """
    Required configuration is missing or invalid.

    Raised at construction time, before any connection is attempted.
    """

    pass


class ConnectError(DirectoryAuthError):
    """
    Transport-level connection could not be established.

    Raised at construction time; the host application should treat it as
    a startup failure.
    """

    pass


class StateError(DirectoryAuthError):
    """
    Invalid state for the requested operation.

    Raised when a closed connection or authenticator is used again.
    """

    pass


class InvariantViolation(DirectoryAuthError):
    """
    Login state machine invariant was violated.

    Indicates a transition that would leave the login in an inconsistent
    state, e.g. authenticated without a resolved distinguished name.
    """

    pass


class BindFailure(DirectoryAuthError):
    """
    A bind (service or user) was rejected or raised.

    Attributes:
        dn: Identity the bind was attempted as (may be empty)
        diagnostic: Server diagnostic text, for logging only
    """

    def __init__(
        self,
        message: str,
        dn: Optional[str] = None,
        diagnostic: Optional[str] = None,
        code: Optional[int] = None,
    ) -> None:
        super().__init__(message, code)
        self.dn = dn
        self.diagnostic = diagnostic


class SearchFailure(DirectoryAuthError):
    """A directory search could not be performed or returned an error."""

    def __init__(
        self,
        message: str,
        diagnostic: Optional[str] = None,
        code: Optional[int] = None,
    ) -> None:
        super().__init__(message, code)
        self.diagnostic = diagnostic


class NotFoundError(SearchFailure):
    """The search succeeded but returned no entries."""

    def __init__(self, message: str = "No entry matched the search filter") -> None:
        super().__init__(message)
