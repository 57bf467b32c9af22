"""
dirauth Bind Diagnostics

Classification of server diagnostic text into configured user messages.

Rules are kept as an ordered tuple: every rule whose code occurs in the
diagnostic text yields one FailureDetail, in the order the rules were
declared. Text with no matching rule yields no user message at all, so
server-internal diagnostics never reach the end user.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import attrs
from attrs import field, validators

from dirauth.core.types import FailureDetail


# Active Directory reports the reason of a rejected bind as a "data <hex>"
# sub-code inside the diagnostic message, e.g.
# "80090308: LdapErr: DSID-0C09042F, comment: AcceptSecurityContext error, data 52e, v4563"
ACTIVE_DIRECTORY_ERRORS: Tuple[Tuple[str, str], ...] = (
    ("data 525", "User not found"),
    ("data 52e", "Invalid username or password"),
    ("data 530", "You are not permitted to log on at this time"),
    ("data 531", "You are not permitted to log on at this workstation"),
    ("data 532", "Your password has expired"),
    ("data 533", "Your account is disabled"),
    ("data 701", "Your account has expired"),
    ("data 773", "You must reset your password before logging on"),
    ("data 775", "Your account is locked"),
)


@attrs.define(frozen=True, slots=True)
class FlashSettings:
    """
    Presentation defaults for classified messages.

    Attributes:
        key: Notification store key (the host renders ``Flash.<key>``)
        element: Template element used to render the message
        params: Extra template parameters
    """

    key: str = field(default="flash", validator=validators.instance_of(str))
    element: str = field(default="Flash/error", validator=validators.instance_of(str))
    params: Dict[str, Any] = field(factory=dict, converter=dict)

    @classmethod
    def from_mapping(cls, settings: Optional[Mapping[str, Any]]) -> FlashSettings:
        settings = settings or {}
        defaults = cls()
        return cls(
            key=settings.get("key") or defaults.key,
            element=settings.get("element") or defaults.element,
            params=settings.get("params") or {},
        )


@attrs.define(frozen=True, slots=True)
class DiagnosticRule:
    """
    Maps a diagnostic substring to a user-facing message.

    Presentation fields left as None fall back to the FlashSettings.

    INVARIANT: code is non-empty
    """

    code: str = field(validator=[validators.instance_of(str), validators.min_len(1)])
    message: str = field(validator=validators.instance_of(str))
    key: Optional[str] = None
    element: Optional[str] = None
    params: Optional[Dict[str, Any]] = None

    def matches(self, diagnostic: str) -> bool:
        return self.code in diagnostic

    def to_failure(self, flash: FlashSettings, diagnostic: str) -> FailureDetail:
        return FailureDetail(
            code=self.code,
            message=self.message,
            key=self.key if self.key is not None else flash.key,
            element=self.element if self.element is not None else flash.element,
            params=dict(self.params if self.params is not None else flash.params),
            diagnostic=diagnostic,
        )


RuleSpec = Union[DiagnosticRule, Tuple[str, str], Mapping[str, Any]]


def coerce_rules(
    rules: Union[None, Mapping[str, Any], Iterable[RuleSpec]],
) -> Tuple[DiagnosticRule, ...]:
    """
    Normalize configured rules to an ordered tuple of DiagnosticRule.

    Accepts:
        - a mapping code -> message (or code -> {message, key, element, params}),
          iterated in insertion order
        - a sequence of DiagnosticRule, (code, message) pairs or rule mappings
    """
    if rules is None:
        return ()

    if isinstance(rules, Mapping):
        items: Iterable[Any] = rules.items()
    else:
        items = rules

    coerced = []
    for item in items:
        if isinstance(item, DiagnosticRule):
            coerced.append(item)
        elif isinstance(item, Mapping):
            coerced.append(_rule_from_mapping(item.get("code"), item))
        else:
            code, value = item
            if isinstance(value, Mapping):
                coerced.append(_rule_from_mapping(code, value))
            else:
                coerced.append(DiagnosticRule(code=code, message=value))
    return tuple(coerced)


def _rule_from_mapping(code: Any, value: Mapping[str, Any]) -> DiagnosticRule:
    return DiagnosticRule(
        code=code,
        message=value.get("message", ""),
        key=value.get("key"),
        element=value.get("element"),
        params=value.get("params"),
    )


def classify_diagnostic(
    diagnostic: Optional[str],
    rules: Iterable[DiagnosticRule],
    flash: Optional[FlashSettings] = None,
) -> Tuple[FailureDetail, ...]:
    """
    Map a server diagnostic to configured failure messages.

    Args:
        diagnostic: Server diagnostic text (may be None or empty)
        rules: Ordered diagnostic rules
        flash: Presentation defaults

    Returns:
        One FailureDetail per matching rule, in rule order; empty when the
        diagnostic is absent or nothing matches
    """
    if not diagnostic:
        return ()

    flash = flash or FlashSettings()
    return tuple(
        rule.to_failure(flash, diagnostic) for rule in rules if rule.matches(diagnostic)
    )
