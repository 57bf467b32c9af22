"""
dirauth LDAP Login Types

States, context and events of the two-phase bind login.

Phases:
1. Init: build the search filter, or synthesize a DN (direct-bind mode)
2. ServiceBind: bind as the configured service account
3. Resolve: search for the user entry and take its DN
4. UserBind: rebind as the user with the supplied password
5. Classify: map the server diagnostic to configured messages
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Optional, Tuple

import attrs
from attrs import field

from dirauth.core.types import DirectoryEntry


# =============================================================================
# LOGIN STATE MACHINE
# =============================================================================


class LoginState(Enum):
    """Login protocol states."""

    INITIAL = auto()
    SERVICE_BOUND = auto()
    RESOLVED = auto()
    UNRESOLVED = auto()  # Service bind or search gave no DN; user bind still runs
    AUTHENTICATED = auto()
    FAILED = auto()


@attrs.define
class LoginContext:
    """
    Login attempt context.

    Never holds the password; the state machine snapshots this context
    into the audit trace.
    """

    # Identity
    username: str = ""
    search_filter: Optional[str] = None

    # Resolution
    dn: Optional[str] = None
    entry: Optional[DirectoryEntry] = None
    direct_bind: bool = False

    # Identity the connection is currently bound as
    bound_dn: Optional[str] = None

    # Error state
    unresolved_reason: str = ""
    diagnostic: Optional[str] = field(default=None, repr=False)
    matched_codes: Tuple[str, ...] = ()


# =============================================================================
# LOGIN EVENTS (for state machine)
# =============================================================================


@attrs.define(frozen=True, slots=True)
class DirectBindSelected:
    """Event: No service account; DN synthesized from the username."""

    dn: str


@attrs.define(frozen=True, slots=True)
class ServiceBindSucceeded:
    """Event: Connection bound as the service account."""

    account: str


@attrs.define(frozen=True, slots=True)
class ServiceBindFailed:
    """Event: Service account bind was rejected."""

    reason: str


@attrs.define(frozen=True, slots=True)
class EntryResolved:
    """Event: Search returned the user entry."""

    entry: DirectoryEntry
    search_filter: Optional[str] = None

    @property
    def dn(self) -> str:
        return self.entry.dn


@attrs.define(frozen=True, slots=True)
class EntryNotFound:
    """Event: Search failed or returned no entries."""

    reason: str
    search_filter: Optional[str] = None


@attrs.define(frozen=True, slots=True)
class UserBindSucceeded:
    """Event: Connection bound as the user."""

    dn: str
    entry: DirectoryEntry


@attrs.define(frozen=True, slots=True)
class UserBindFailed:
    """Event: User bind was rejected or the attempt raised."""

    reason: str
    diagnostic: Optional[str] = field(default=None, repr=False)
    matched_codes: Tuple[str, ...] = ()
