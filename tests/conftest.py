"""
Pytest configuration and shared fixtures for dirauth tests.
"""

from typing import Any, Dict, List, Optional

import pytest
from ldap3.core.exceptions import LDAPSocketReceiveError, LDAPUserNameIsMandatoryError

from dirauth.core.types import DirectoryEntry
from dirauth.ldap.authenticator import LDAPAuthenticator
from dirauth.ldap.config import DirectoryConfig
from dirauth.ldap.connection import DirectoryConnection
from dirauth.ldap.diagnostics import ACTIVE_DIRECTORY_ERRORS


BASE_DN = "OU=Staff,DC=example,DC=com"
SERVICE_DN = "CN=svc-login,OU=Service,DC=example,DC=com"
SERVICE_PASSWORD = "svc-S3cret!"
USER_DN = "CN=John Doe,OU=Staff,DC=example,DC=com"
USER_PASSWORD = "TestP@ssw0rd123!"

INVALID_CREDENTIALS = (
    "80090308: LdapErr: DSID-0C09042F, comment: AcceptSecurityContext error, data 52e, v4563"
)
PASSWORD_MUST_CHANGE = (
    "80090308: LdapErr: DSID-0C09042F, comment: AcceptSecurityContext error, data 773, v4563"
)


# =============================================================================
# IN-MEMORY DIRECTORY
# =============================================================================


class FakeDirectory:
    """
    Directory contents served by FakeLdap3Connection.

    Searches are answered by exact filter lookup; base-scope reads by DN.
    """

    def __init__(self) -> None:
        self.entries: Dict[str, Dict[str, List[str]]] = {}
        self.passwords: Dict[str, str] = {}
        self.filters: Dict[str, List[str]] = {}
        self.diagnostics: Dict[str, str] = {}
        self.default_diagnostic = INVALID_CREDENTIALS
        self.search_error: Optional[Exception] = None

    def add_user(
        self,
        dn: str,
        password: str,
        attributes: Optional[Dict[str, List[str]]] = None,
        filters: Optional[List[str]] = None,
    ) -> None:
        self.entries[dn] = dict(attributes or {})
        self.passwords[dn] = password
        for search_filter in filters or []:
            self.filters.setdefault(search_filter, []).append(dn)


class FakeLdap3Connection:
    """
    Stand-in for ldap3.Connection with raise_exceptions=False.

    Exposes the attributes DirectoryConnection relies on: user, password,
    result, response, bind(), search(), unbind().
    """

    def __init__(self, directory: FakeDirectory) -> None:
        self.directory = directory
        self.user: Optional[str] = None
        self.password: Optional[str] = None
        self.result: Optional[Dict[str, Any]] = None
        self.response: List[Dict[str, Any]] = []
        self.bind_calls: List[Optional[str]] = []
        self.search_calls: List[Dict[str, Any]] = []
        self.unbind_calls = 0

    def bind(self) -> bool:
        self.bind_calls.append(self.user)
        if not self.user:
            raise LDAPUserNameIsMandatoryError("user name is mandatory in simple bind")
        if self.directory.passwords.get(self.user) == self.password:
            self.result = {"result": 0, "description": "success", "message": ""}
            return True
        self.result = {
            "result": 49,
            "description": "invalidCredentials",
            "message": self.directory.diagnostics.get(self.user, self.directory.default_diagnostic),
        }
        return False

    def search(self, search_base, search_filter, search_scope, attributes) -> bool:
        self.search_calls.append(
            {
                "search_base": search_base,
                "search_filter": search_filter,
                "search_scope": search_scope,
                "attributes": attributes,
            }
        )
        if self.directory.search_error is not None:
            raise self.directory.search_error

        if search_scope == "BASE":
            dns = [search_base] if search_base in self.directory.entries else []
        else:
            dns = list(self.directory.filters.get(search_filter, []))

        self.response = [
            {
                "type": "searchResEntry",
                "dn": dn,
                "attributes": self._select(self.directory.entries[dn], attributes),
            }
            for dn in dns
        ]
        self.result = {"result": 0, "description": "success", "message": "", "type": "searchResDone"}
        return bool(self.response)

    def unbind(self) -> bool:
        self.unbind_calls += 1
        return True

    @staticmethod
    def _select(entry: Dict[str, List[str]], attributes: Any) -> Dict[str, List[str]]:
        if attributes == "*" or attributes is None:
            return dict(entry)
        return {name: entry[name] for name in attributes if name in entry}


class DroppingLdap3Connection(FakeLdap3Connection):
    """Connection whose transport drops during the user search."""

    def search(self, search_base, search_filter, search_scope, attributes) -> bool:
        raise LDAPSocketReceiveError("connection closed by peer")


# =============================================================================
# DIRECTORY FIXTURES
# =============================================================================


@pytest.fixture
def directory() -> FakeDirectory:
    """Directory with a service account and one user."""
    directory = FakeDirectory()
    directory.add_user(SERVICE_DN, SERVICE_PASSWORD)
    directory.add_user(
        USER_DN,
        USER_PASSWORD,
        attributes={
            "mail": ["jdoe@example.com"],
            "displayName": ["John Doe"],
            "memberOf": [
                "CN=Staff,OU=Groups,DC=example,DC=com",
                "CN=VPN,OU=Groups,DC=example,DC=com",
            ],
        },
        filters=["(sAMAccountName=jdoe)"],
    )
    return directory


@pytest.fixture
def ldap3_connection(directory: FakeDirectory) -> FakeLdap3Connection:
    return FakeLdap3Connection(directory)


@pytest.fixture
def directory_connection(ldap3_connection: FakeLdap3Connection) -> DirectoryConnection:
    """DirectoryConnection wired to the in-memory directory."""
    return DirectoryConnection(host="ldap.example.com", connection=ldap3_connection)


# =============================================================================
# CONFIG AND AUTHENTICATOR FIXTURES
# =============================================================================


@pytest.fixture
def service_config() -> DirectoryConfig:
    """Config with a service account and the Active Directory error table."""
    return DirectoryConfig(
        host="ldap://dc.example.com",
        bind_account=SERVICE_DN,
        bind_password=SERVICE_PASSWORD,
        base_dn=BASE_DN,
        filter="(sAMAccountName={username})",
        attributes=("mail", "displayName", "memberOf"),
        errors=ACTIVE_DIRECTORY_ERRORS,
    )


@pytest.fixture
def direct_config() -> DirectoryConfig:
    """Config without a service account (direct-bind mode)."""
    return DirectoryConfig(
        host="ldap://dc.example.com",
        base_dn=BASE_DN,
        errors=ACTIVE_DIRECTORY_ERRORS,
    )


@pytest.fixture
def authenticator(
    service_config: DirectoryConfig,
    directory_connection: DirectoryConnection,
) -> LDAPAuthenticator:
    """Service-account authenticator over the in-memory directory."""
    return LDAPAuthenticator(config=service_config, connection=directory_connection)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def make_entry(dn: str = USER_DN, **attributes: List[str]) -> DirectoryEntry:
    """Helper to create a directory entry."""
    return DirectoryEntry(dn=dn, attributes=attributes)


# =============================================================================
# PYTEST MARKERS
# =============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests requiring a real directory server"
    )
