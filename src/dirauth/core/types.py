"""
dirauth Core Types

Value types shared by the connection layer and the authentication flow.

Design Principles:
- Immutable: All types use frozen attrs for safety
- Validated: Type constraints enforced at construction
- Leak-free: raw server diagnostics are excluded from repr
"""

from __future__ import annotations

from enum import Enum, auto
from typing import Any, Dict, Mapping, Optional, Tuple

import attrs
from attrs import field, validators


AttributeMap = Mapping[str, Tuple[str, ...]]


def _freeze_attributes(value: Optional[Mapping[str, Any]]) -> Dict[str, Tuple[str, ...]]:
    """Normalize directory attributes to name -> tuple of strings."""
    frozen: Dict[str, Tuple[str, ...]] = {}
    for name, raw in (value or {}).items():
        if raw is None:
            values: Tuple[Any, ...] = ()
        elif isinstance(raw, (list, tuple, set, frozenset)):
            values = tuple(raw)
        else:
            values = (raw,)
        frozen[str(name)] = tuple(_as_text(v) for v in values)
    return frozen


def _as_text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


# =============================================================================
# ENUMS
# =============================================================================


class AuthOutcome(Enum):
    """Terminal outcome of one authentication attempt."""

    SUCCESS = auto()
    FAILURE = auto()
    NOT_ATTEMPTED = auto()  # Credentials absent, no bind performed


# =============================================================================
# DIRECTORY TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class DirectoryEntry:
    """
    One entry returned by a directory search.

    Directory attributes are multi-valued, so every attribute maps to an
    ordered tuple of values.

    INVARIANT: dn is non-empty
    """

    dn: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    attributes: Dict[str, Tuple[str, ...]] = field(
        factory=dict, converter=_freeze_attributes
    )

    def get(self, name: str) -> Tuple[str, ...]:
        """Values of an attribute (case-insensitive name), empty if absent."""
        if name in self.attributes:
            return self.attributes[name]
        lowered = name.lower()
        for key, values in self.attributes.items():
            if key.lower() == lowered:
                return values
        return ()

    def first(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of an attribute, or default."""
        values = self.get(name)
        return values[0] if values else default


# =============================================================================
# RESULT TYPES
# =============================================================================


@attrs.define(frozen=True, slots=True)
class FailureDetail:
    """
    Classified reason for a failed bind.

    Attributes:
        code: Configured diagnostic substring that matched (None if unmatched)
        message: User-facing message mapped to the code
        key: Presentation key for the host notification mechanism
        element: Presentation element (template) name
        params: Presentation parameters
        diagnostic: Raw server text, for logging only
    """

    code: Optional[str] = None
    message: Optional[str] = None
    key: str = "flash"
    element: str = "Flash/error"
    params: Dict[str, Any] = field(factory=dict)
    diagnostic: Optional[str] = field(default=None, repr=False, eq=False)

    def to_flash(self) -> Dict[str, Any]:
        """Record handed to the host application's notification store."""
        return {
            "message": self.message,
            "key": self.key,
            "element": self.element,
            "params": dict(self.params),
        }


@attrs.define(frozen=True, slots=True)
class AuthResult:
    """
    Result of an authentication attempt.

    Attributes:
        outcome: SUCCESS, FAILURE or NOT_ATTEMPTED
        dn: Distinguished name the user bound as (if success)
        attributes: Directory attributes of the user entry (if success)
        failures: Classified failure messages, in configuration order (if failure)
        diagnostic: Raw server diagnostic text (if failure), never user-facing
    """

    outcome: AuthOutcome = field(validator=validators.instance_of(AuthOutcome))
    dn: Optional[str] = None
    attributes: Dict[str, Tuple[str, ...]] = field(
        factory=dict, converter=_freeze_attributes
    )
    failures: Tuple[FailureDetail, ...] = field(default=(), converter=tuple)
    diagnostic: Optional[str] = field(default=None, repr=False, eq=False)

    def __attrs_post_init__(self) -> None:
        if self.outcome is AuthOutcome.SUCCESS:
            if not self.dn:
                raise ValueError("Successful auth must have dn")
            if self.failures:
                raise ValueError("Successful auth cannot carry failures")
        elif self.attributes:
            raise ValueError("Only successful auth carries attributes")

    @property
    def success(self) -> bool:
        return self.outcome is AuthOutcome.SUCCESS

    @property
    def attempted(self) -> bool:
        return self.outcome is not AuthOutcome.NOT_ATTEMPTED

    @property
    def messages(self) -> Tuple[str, ...]:
        """User-facing messages of the classified failures."""
        return tuple(f.message for f in self.failures if f.message)

    @classmethod
    def success_result(cls, entry: DirectoryEntry) -> AuthResult:
        """Create a successful authentication result."""
        return cls(
            outcome=AuthOutcome.SUCCESS,
            dn=entry.dn,
            attributes=entry.attributes,
        )

    @classmethod
    def failure_result(
        cls,
        failures: Tuple[FailureDetail, ...] = (),
        diagnostic: Optional[str] = None,
    ) -> AuthResult:
        """Create a failed authentication result."""
        return cls(
            outcome=AuthOutcome.FAILURE,
            failures=failures,
            diagnostic=diagnostic,
        )

    @classmethod
    def not_attempted(cls) -> AuthResult:
        """Create the neutral result for absent credentials."""
        return cls(outcome=AuthOutcome.NOT_ATTEMPTED)
