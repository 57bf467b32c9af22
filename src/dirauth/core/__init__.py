"""
dirauth Core Module

Provides foundational types and abstractions used by the LDAP login.

Components:
- types: Result and directory entry types
- state_machine: Base state machine with invariant checking
- exceptions: Custom exception types
"""

from dirauth.core.types import (
    AuthOutcome,
    AuthResult,
    DirectoryEntry,
    FailureDetail,
)
from dirauth.core.state_machine import StateMachineBase, Transition
from dirauth.core.exceptions import (
    BindFailure,
    ConfigError,
    ConnectError,
    DirectoryAuthError,
    InvariantViolation,
    NotFoundError,
    SearchFailure,
    StateError,
)

__all__ = [
    # Types
    "AuthOutcome",
    "AuthResult",
    "DirectoryEntry",
    "FailureDetail",
    # State Machine
    "StateMachineBase",
    "Transition",
    # Exceptions
    "DirectoryAuthError",
    "ConfigError",
    "ConnectError",
    "StateError",
    "InvariantViolation",
    "BindFailure",
    "SearchFailure",
    "NotFoundError",
]
