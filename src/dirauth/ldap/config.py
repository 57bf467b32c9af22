"""
dirauth Directory Configuration

Immutable settings for one directory. Loaded once and shared read-only by
every authenticator built from it.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Sequence, Tuple, Union

import attrs
from attrs import field, validators
from ldap3.utils.conv import escape_filter_chars

from dirauth.core.exceptions import ConfigError
from dirauth.ldap.connection import DEFAULT_TIMEOUT
from dirauth.ldap.diagnostics import DiagnosticRule, FlashSettings, coerce_rules

FilterBuilder = Callable[[str], str]
HostSpec = Union[None, str, Callable[[], str]]

DEFAULT_FILTER = "(sAMAccountName={username})"


def template_filter(template: str) -> FilterBuilder:
    """
    Filter builder from a ``{username}`` template.

    The username is escaped so that filter metacharacters in it cannot
    change the structure of the search filter.
    """
    if "{username}" not in template:
        raise ConfigError(f"Filter template has no {{username}} placeholder: {template}")

    def build(username: str) -> str:
        return template.replace("{username}", escape_filter_chars(username))

    return build


def _to_filter_builder(value: Union[None, str, FilterBuilder]) -> FilterBuilder:
    if value is None:
        return template_filter(DEFAULT_FILTER)
    if isinstance(value, str):
        return template_filter(value)
    if callable(value):
        return value
    raise ConfigError(f"Filter must be a template string or a callable, got {type(value).__name__}")


def _to_port(value: Any) -> Optional[int]:
    if value in (None, "", 0, "0"):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid directory port: {value!r}") from e


def _to_attributes(value: Union[None, str, Sequence[str]]) -> Tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _to_flash(value: Union[None, FlashSettings, Mapping[str, Any]]) -> FlashSettings:
    if isinstance(value, FlashSettings):
        return value
    return FlashSettings.from_mapping(value)


@attrs.define(frozen=True)
class DirectoryConfig:
    """
    Directory configuration.

    Attributes:
        host: Server host or ldap:// URL, or a callable returning one
              (evaluated once, when an authenticator is constructed)
        port: Server port (None for the protocol default)
        bind_account: Service account DN used to look up users (optional)
        bind_password: Service account password
        base_dn: Subtree root for user searches
        filter: Callable username -> search filter, or a ``{username}`` template
        attributes: Attribute names to return (empty for all user attributes)
        errors: Ordered diagnostic rules
        flash: Presentation defaults for classified messages
        timeout: Network connect timeout in seconds
    """

    host: HostSpec = None
    port: Optional[int] = field(default=None, converter=_to_port)
    bind_account: Optional[str] = None
    bind_password: Optional[str] = field(default=None, repr=False)
    base_dn: str = field(default="", validator=validators.instance_of(str))
    filter: FilterBuilder = field(default=None, converter=_to_filter_builder, repr=False)
    attributes: Tuple[str, ...] = field(default=(), converter=_to_attributes)
    errors: Tuple[DiagnosticRule, ...] = field(default=(), converter=coerce_rules)
    flash: FlashSettings = field(factory=FlashSettings, converter=_to_flash)
    timeout: int = field(default=DEFAULT_TIMEOUT, converter=int, validator=validators.gt(0))

    @property
    def has_service_account(self) -> bool:
        return bool(self.bind_account)

    def resolve_host(self) -> str:
        """
        Evaluate the host setting.

        Raises:
            ConfigError: If no host is configured
        """
        host = self.host() if callable(self.host) else self.host
        if not host:
            raise ConfigError("LDAP server not specified")
        return str(host)

    def direct_bind_dn(self, username: str) -> str:
        """DN used when no service account is configured."""
        return f"CN={username},{self.base_dn}"

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any]) -> DirectoryConfig:
        """
        Create config from the host application's settings.

        Reads the ``Ldap`` block when present, otherwise the mapping itself.

        Example:
            DirectoryConfig.from_mapping({
                "Ldap": {
                    "host": "ldap://dc.example.com",
                    "baseDN": "OU=Staff,DC=example,DC=com",
                    "bindAccount": "CN=svc,DC=example,DC=com",
                    "bindPassword": "secret",
                    "filter": "(sAMAccountName={username})",
                    "return": ["mail", "displayName", "memberOf"],
                    "errors": {"data 773": "You must reset your password"},
                }
            })
        """
        block = settings.get("Ldap", settings)
        if not isinstance(block, Mapping):
            raise ConfigError("LDAP settings must be a mapping")

        return cls(
            host=block.get("host"),
            port=block.get("port"),
            bind_account=block.get("bindAccount") or None,
            bind_password=block.get("bindPassword"),
            base_dn=block.get("baseDN") or "",
            filter=block.get("filter"),
            attributes=block.get("return"),
            errors=block.get("errors"),
            flash=block.get("flash"),
            timeout=block.get("timeout") or DEFAULT_TIMEOUT,
        )
