"""
dirauth Directory Connection

One connection to a directory server and its raw protocol operations.

Connection options:
- LDAP protocol version 3
- Referral following disabled
- Bounded connect timeout (5 seconds by default)
- ldap3 exceptions off: results are inspected, not raised

Primitives return ``returns`` Result containers, so a rejected bind or a
failed search is ordinary control flow for the caller. The server's
diagnostic text of the last operation stays available through
``last_diagnostic_message`` for error classification.

NOT thread-safe: a bind changes the identity of the whole connection.
Use one DirectoryConnection per concurrent login attempt.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import attrs
import structlog
from ldap3 import ALL_ATTRIBUTES, BASE, NONE, SIMPLE, SUBTREE, Connection, Server
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import RESULT_SUCCESS
from returns.result import Failure, Result, Success

from dirauth.core.exceptions import (
    BindFailure,
    ConnectError,
    NotFoundError,
    SearchFailure,
    StateError,
)
from dirauth.core.types import DirectoryEntry

logger = structlog.get_logger()

PROTOCOL_VERSION = 3
DEFAULT_TIMEOUT = 5
ENTRY_FILTER = "(objectClass=*)"


@attrs.define
class DirectoryConnection:
    """
    Connection to an LDAP directory server.

    Lifecycle: open -> bound as one identity at a time -> closed.
    A closed connection raises StateError on any further operation.

    Example:
        with DirectoryConnection.open("ldap.example.com") as conn:
            conn.bind("cn=svc,dc=example,dc=com", "secret")
            entries = conn.search("dc=example,dc=com", "(uid=jdoe)", ["mail"])
    """

    host: str
    port: Optional[int] = None
    timeout: int = DEFAULT_TIMEOUT

    _connection: Optional[Connection] = attrs.field(default=None, repr=False)
    _bound_dn: Optional[str] = None
    _closed: bool = False
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    @classmethod
    def open(
        cls,
        host: str,
        port: Optional[int] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> "DirectoryConnection":
        """
        Create and open a connection.

        Raises:
            ConnectError: If the transport cannot be established
        """
        conn = cls(host=host, port=port or None, timeout=timeout)
        conn.connect()
        return conn

    def connect(self) -> None:
        """Establish the transport connection."""
        if self._closed:
            raise StateError("Directory connection is closed")
        if self._connection is not None:
            return

        try:
            server = Server(
                self.host,
                port=self.port,
                get_info=NONE,
                connect_timeout=self.timeout,
            )
            connection = Connection(
                server,
                authentication=SIMPLE,
                version=PROTOCOL_VERSION,
                auto_referrals=False,
                raise_exceptions=False,
            )
            connection.open()
        except LDAPException as e:
            self._logger.error(
                "directory_connect_failed",
                host=self.host,
                port=self.port,
                error=str(e),
            )
            raise ConnectError(
                f"Unable to connect to directory server {self.host}: {e}"
            ) from e

        self._connection = connection
        self._logger.debug(
            "directory_connected",
            host=self.host,
            port=self.port,
            timeout=self.timeout,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bound_dn(self) -> Optional[str]:
        """Identity the connection is bound as, None when unbound."""
        return self._bound_dn

    def bind(self, dn: Optional[str], password: str) -> Result[bool, BindFailure]:
        """
        Simple bind as ``dn``.

        Returns:
            Success(True) on explicit protocol success
            Failure(BindFailure) if the server rejected the bind or the
            operation raised (including an empty dn)
        """
        connection = self._require_open()
        self._bound_dn = None

        try:
            connection.user = dn or ""
            connection.password = password
            bound = connection.bind()
        except LDAPException as e:
            diagnostic = self.last_diagnostic_message()
            self._logger.warning(
                "directory_bind_error",
                dn=dn,
                error=str(e),
                diagnostic=diagnostic,
            )
            return Failure(BindFailure(str(e), dn=dn, diagnostic=diagnostic))

        if bound is True:
            self._bound_dn = dn
            self._logger.debug("directory_bound", dn=dn)
            return Success(True)

        result = self._last_result()
        diagnostic = self.last_diagnostic_message()
        self._logger.warning(
            "directory_bind_rejected",
            dn=dn,
            result=result.get("result"),
            description=result.get("description"),
            diagnostic=diagnostic,
        )
        return Failure(
            BindFailure(
                result.get("description") or "Bind rejected",
                dn=dn,
                diagnostic=diagnostic,
                code=result.get("result"),
            )
        )

    def search(
        self,
        base_dn: str,
        search_filter: str,
        attributes: Optional[Sequence[str]] = None,
        scope: Any = SUBTREE,
    ) -> Result[List[DirectoryEntry], SearchFailure]:
        """
        Search the subtree under ``base_dn``.

        Returns:
            Success(entries), possibly empty; referral continuations are dropped
            Failure(SearchFailure) if the search raised or the server
            returned an error without entries
        """
        connection = self._require_open()
        requested = list(attributes) if attributes else ALL_ATTRIBUTES

        try:
            connection.search(
                search_base=base_dn,
                search_filter=search_filter,
                search_scope=scope,
                attributes=requested,
            )
        except LDAPException as e:
            self._logger.warning(
                "directory_search_error",
                base_dn=base_dn,
                filter=search_filter,
                error=str(e),
            )
            return Failure(
                SearchFailure(str(e), diagnostic=self.last_diagnostic_message())
            )

        entries = [
            DirectoryEntry(dn=item["dn"], attributes=item.get("attributes"))
            for item in (connection.response or [])
            if item.get("type") == "searchResEntry" and item.get("dn")
        ]

        result = self._last_result()
        code = result.get("result", RESULT_SUCCESS)
        if code != RESULT_SUCCESS and not entries:
            self._logger.warning(
                "directory_search_failed",
                base_dn=base_dn,
                result=code,
                description=result.get("description"),
            )
            return Failure(
                SearchFailure(
                    result.get("description") or "Search failed",
                    diagnostic=self.last_diagnostic_message(),
                    code=code,
                )
            )

        self._logger.debug(
            "directory_search_complete",
            base_dn=base_dn,
            entries=len(entries),
        )
        return Success(entries)

    @classmethod
    def first_entry_dn(cls, entries: Sequence[DirectoryEntry]) -> Result[str, SearchFailure]:
        """DN of the first entry of a search result."""
        return cls.first_entry(entries).map(lambda entry: entry.dn)

    def get_attributes(
        self,
        dn_or_entry: Union[str, DirectoryEntry],
        attributes: Optional[Sequence[str]] = None,
    ) -> Result[Dict[str, Tuple[str, ...]], SearchFailure]:
        """
        All attribute values of a resolved entry.

        An entry returns its own attributes; a DN is read with a base-scope
        search as the currently bound identity.
        """
        if isinstance(dn_or_entry, DirectoryEntry):
            return Success(dict(dn_or_entry.attributes))

        return (
            self.search(dn_or_entry, ENTRY_FILTER, attributes, scope=BASE)
            .bind(self.first_entry)
            .map(lambda entry: dict(entry.attributes))
        )

    @staticmethod
    def first_entry(
        entries: Sequence[DirectoryEntry],
    ) -> Result[DirectoryEntry, SearchFailure]:
        if not entries:
            return Failure(NotFoundError())
        return Success(entries[0])

    def last_diagnostic_message(self) -> Optional[str]:
        """Server diagnostic text of the last operation, if any."""
        message = self._last_result().get("message")
        if not message:
            return None
        return str(message)

    def close(self) -> None:
        """Unbind and release the transport. Idempotent, never raises."""
        if self._closed:
            return
        self._closed = True
        connection, self._connection = self._connection, None
        self._bound_dn = None
        if connection is None:
            return

        try:
            connection.unbind()
        except Exception as e:
            self._logger.debug("directory_close_error", host=self.host, error=str(e))
        else:
            self._logger.debug("directory_connection_closed", host=self.host)

    def __enter__(self) -> "DirectoryConnection":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _require_open(self) -> Connection:
        if self._closed or self._connection is None:
            raise StateError("Directory connection is closed")
        return self._connection

    def _last_result(self) -> Dict[str, Any]:
        if self._connection is None:
            return {}
        result = self._connection.result
        return result if isinstance(result, dict) else {}
