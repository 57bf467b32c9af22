"""
dirauth LDAP Authenticator

Two-phase bind login against an LDAP directory.

Protocol:
1. Bind as the configured service account (skipped in direct-bind mode,
   where the DN is synthesized as CN=<username>,<base DN>)
2. Search for the user entry under the base DN and take its DN
3. Rebind as that DN with the user's password
4. On failure, classify the server's diagnostic message into the
   configured user-facing messages

A failed service bind or an empty search does not end the attempt: the
DN stays unresolved and the user bind still runs, and fails, so that both
cases surface through the same diagnostic classification.

Per-attempt errors never escape ``authenticate``. Only construction fails
loudly (ConfigError, ConnectError).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import attrs
import structlog
from returns.result import Failure, Result, Success

from dirauth.core.exceptions import StateError
from dirauth.core.state_machine import StateMachineBase, Transition, TransitionEntry
from dirauth.core.types import AuthResult, DirectoryEntry
from dirauth.ldap.config import DirectoryConfig
from dirauth.ldap.connection import DirectoryConnection
from dirauth.ldap.diagnostics import classify_diagnostic
from dirauth.ldap.types import (
    DirectBindSelected,
    EntryNotFound,
    EntryResolved,
    LoginContext,
    LoginState,
    ServiceBindFailed,
    ServiceBindSucceeded,
    UserBindFailed,
    UserBindSucceeded,
)
from dirauth.notify import Notifier

logger = structlog.get_logger()


# =============================================================================
# LOGIN STATE MACHINE
# =============================================================================


@attrs.define
class LoginStateMachine(StateMachineBase[LoginState, Any, LoginContext]):
    """
    State machine for one login attempt.

    States:
    - INITIAL: Nothing bound
    - SERVICE_BOUND: Bound as the service account
    - RESOLVED: User DN known (searched or synthesized)
    - UNRESOLVED: No user DN; the user bind will fail
    - AUTHENTICATED: Bound as the user
    - FAILED: User bind rejected or the attempt raised
    """

    def initial_state(self) -> LoginState:
        return LoginState.INITIAL

    def transition_table(
        self,
    ) -> Dict[Tuple[LoginState, type], TransitionEntry]:
        return {
            # INITIAL -> RESOLVED (direct-bind mode)
            (LoginState.INITIAL, DirectBindSelected): (
                LoginState.RESOLVED,
                self._handle_direct_bind,
            ),
            # INITIAL -> SERVICE_BOUND | UNRESOLVED
            (LoginState.INITIAL, ServiceBindSucceeded): (
                LoginState.SERVICE_BOUND,
                self._handle_service_bound,
            ),
            (LoginState.INITIAL, ServiceBindFailed): (
                LoginState.UNRESOLVED,
                self._handle_service_bind_failed,
            ),
            # SERVICE_BOUND -> RESOLVED | UNRESOLVED
            (LoginState.SERVICE_BOUND, EntryResolved): (
                LoginState.RESOLVED,
                self._handle_resolved,
            ),
            (LoginState.SERVICE_BOUND, EntryNotFound): (
                LoginState.UNRESOLVED,
                self._handle_not_found,
            ),
            # RESOLVED -> AUTHENTICATED
            (LoginState.RESOLVED, UserBindSucceeded): (
                LoginState.AUTHENTICATED,
                self._handle_user_bound,
            ),
            # Any non-terminal state -> FAILED
            (LoginState.INITIAL, UserBindFailed): (
                LoginState.FAILED,
                self._handle_failed,
            ),
            (LoginState.SERVICE_BOUND, UserBindFailed): (
                LoginState.FAILED,
                self._handle_failed,
            ),
            (LoginState.RESOLVED, UserBindFailed): (
                LoginState.FAILED,
                self._handle_failed,
            ),
            (LoginState.UNRESOLVED, UserBindFailed): (
                LoginState.FAILED,
                self._handle_failed,
            ),
        }

    @staticmethod
    def _handle_direct_bind(
        event: DirectBindSelected, ctx: LoginContext
    ) -> LoginContext:
        return attrs.evolve(ctx, dn=event.dn, direct_bind=True)

    @staticmethod
    def _handle_service_bound(
        event: ServiceBindSucceeded, ctx: LoginContext
    ) -> LoginContext:
        return attrs.evolve(ctx, bound_dn=event.account)

    @staticmethod
    def _handle_service_bind_failed(
        event: ServiceBindFailed, ctx: LoginContext
    ) -> LoginContext:
        return attrs.evolve(
            ctx,
            dn=None,
            bound_dn=None,
            unresolved_reason=event.reason,
        )

    @staticmethod
    def _handle_resolved(
        event: EntryResolved, ctx: LoginContext
    ) -> LoginContext:
        return attrs.evolve(
            ctx,
            dn=event.dn,
            entry=event.entry,
            search_filter=event.search_filter,
        )

    @staticmethod
    def _handle_not_found(
        event: EntryNotFound, ctx: LoginContext
    ) -> LoginContext:
        return attrs.evolve(
            ctx,
            dn=None,
            search_filter=event.search_filter,
            unresolved_reason=event.reason,
        )

    @staticmethod
    def _handle_user_bound(
        event: UserBindSucceeded, ctx: LoginContext
    ) -> LoginContext:
        return attrs.evolve(
            ctx,
            bound_dn=event.dn,
            entry=event.entry,
        )

    @staticmethod
    def _handle_failed(
        event: UserBindFailed, ctx: LoginContext
    ) -> LoginContext:
        return attrs.evolve(
            ctx,
            bound_dn=None,
            diagnostic=event.diagnostic,
            matched_codes=event.matched_codes,
        )


def _resolved_has_dn(state: LoginState, ctx: LoginContext) -> bool:
    """Invariant: a resolved login always knows its DN."""
    if state is LoginState.RESOLVED:
        return bool(ctx.dn)
    return True


def _authenticated_as_resolved_dn(state: LoginState, ctx: LoginContext) -> bool:
    """Invariant: only the resolved DN can end up authenticated."""
    if state is LoginState.AUTHENTICATED:
        return bool(ctx.dn) and ctx.bound_dn == ctx.dn
    return True


# =============================================================================
# LDAP AUTHENTICATOR
# =============================================================================


@attrs.define
class LDAPAuthenticator:
    """
    Authenticates username/password pairs against an LDAP directory.

    Owns one DirectoryConnection, opened at construction and released by
    ``close()`` (or on leaving a ``with`` block). Not safe for concurrent
    use: build one authenticator per concurrent login attempt.

    Example:
        config = DirectoryConfig(
            host="ldap://dc.example.com",
            bind_account="CN=svc,OU=Service,DC=example,DC=com",
            bind_password="secret",
            base_dn="OU=Staff,DC=example,DC=com",
            filter="(sAMAccountName={username})",
            attributes=("mail", "displayName"),
            errors=ACTIVE_DIRECTORY_ERRORS,
        )
        with LDAPAuthenticator(config) as auth:
            result = auth.authenticate("jdoe", "password")
            if result.success:
                print(result.attributes["mail"])
            else:
                print(result.messages)

    Raises (at construction):
        ConfigError: If no host is configured; no connection is attempted
        ConnectError: If the directory server cannot be reached
    """

    config: DirectoryConfig
    notifier: Optional[Notifier] = None

    _connection: Optional[DirectoryConnection] = attrs.field(default=None, alias="connection")
    _host: str = attrs.field(init=False, default="")
    _last_login: Optional[LoginStateMachine] = attrs.field(init=False, default=None)
    _logger: Any = attrs.Factory(lambda: structlog.get_logger())

    def __attrs_post_init__(self) -> None:
        """Resolve the host, then open the connection."""
        self._host = self.config.resolve_host()

        if self._connection is None:
            self._connection = DirectoryConnection.open(
                self._host,
                port=self.config.port,
                timeout=self.config.timeout,
            )

        self._logger.debug(
            "ldap_authenticator_ready",
            host=self._host,
            port=self.config.port,
            service_account=self.config.has_service_account,
        )

    @property
    def host(self) -> str:
        return self._host

    @property
    def closed(self) -> bool:
        return self._connection is None or self._connection.closed

    def authenticate(
        self,
        username: Optional[str],
        password: Optional[str],
    ) -> AuthResult:
        """
        Authenticate a user against the directory.

        Args:
            username: Login name, passed to the filter builder
            password: User password, only ever sent in the user bind

        Returns:
            AuthResult: SUCCESS with the entry's attributes, FAILURE with
            zero or more classified messages, or NOT_ATTEMPTED when either
            credential is absent

        Raises:
            StateError: If the authenticator has been closed
        """
        connection = self._require_connection()

        if not username or not password:
            self._logger.info(
                "authenticate_not_attempted",
                username_present=bool(username),
                password_present=bool(password),
            )
            return AuthResult.not_attempted()

        login = LoginStateMachine(
            _state=LoginState.INITIAL,
            _context=LoginContext(username=username),
        )
        login.add_invariant("resolved_has_dn", _resolved_has_dn)
        login.add_invariant("authenticated_as_resolved_dn", _authenticated_as_resolved_dn)
        self._last_login = login

        self._logger.info(
            "authenticate_start",
            username=username,
            host=self._host,
            service_account=self.config.has_service_account,
        )

        try:
            self._resolve_dn(login, connection, username)
            outcome = self._bind_user(login, connection, password)
        except Exception as e:
            self._logger.error(
                "authenticate_error",
                username=username,
                state=login.state.name,
                error=str(e),
            )
            outcome = Failure(f"Authentication raised: {e}")

        if isinstance(outcome, Success):
            entry = outcome.unwrap()
            self._logger.info("authenticate_success", username=username, dn=entry.dn)
            return AuthResult.success_result(entry)

        return self._classify_failure(login, connection, outcome.failure())

    def _resolve_dn(
        self,
        login: LoginStateMachine,
        connection: DirectoryConnection,
        username: str,
    ) -> None:
        """Phases Init, ServiceBind and Resolve."""
        config = self.config

        if not config.has_service_account:
            login.process_event(DirectBindSelected(dn=config.direct_bind_dn(username)))
            return

        bound = connection.bind(config.bind_account, config.bind_password or "")
        if isinstance(bound, Failure):
            login.process_event(ServiceBindFailed(reason=bound.failure().message))
            return
        login.process_event(ServiceBindSucceeded(account=config.bind_account))

        try:
            search_filter = config.filter(username)
        except Exception as e:
            self._logger.warning("search_filter_failed", username=username, error=str(e))
            login.process_event(EntryNotFound(reason=f"Search filter could not be built: {e}"))
            return

        searched = connection.search(config.base_dn, search_filter, config.attributes)
        if isinstance(searched, Failure):
            login.process_event(
                EntryNotFound(reason=searched.failure().message, search_filter=search_filter)
            )
            return

        entries = searched.unwrap()
        if len(entries) > 1:
            self._logger.warning(
                "search_ambiguous",
                username=username,
                matches=len(entries),
                using=entries[0].dn,
            )

        first = connection.first_entry(entries)
        if isinstance(first, Failure):
            login.process_event(
                EntryNotFound(reason=first.failure().message, search_filter=search_filter)
            )
            return
        login.process_event(EntryResolved(entry=first.unwrap(), search_filter=search_filter))

    def _bind_user(
        self,
        login: LoginStateMachine,
        connection: DirectoryConnection,
        password: str,
    ) -> Result[DirectoryEntry, str]:
        """Phase UserBind, always attempted exactly once."""
        dn = login.context.dn
        bound = connection.bind(dn, password)
        if isinstance(bound, Failure):
            return Failure(bound.failure().message)
        if not dn:
            return Failure("Bound without a resolved distinguished name")

        entry = self._user_entry(login, connection, dn)
        transitioned = login.process_event(UserBindSucceeded(dn=dn, entry=entry))
        if isinstance(transitioned, Failure):
            return Failure(transitioned.failure())
        return Success(entry)

    def _user_entry(
        self,
        login: LoginStateMachine,
        connection: DirectoryConnection,
        dn: str,
    ) -> DirectoryEntry:
        """Attributes of the authenticated entry."""
        source = login.context.entry if login.context.entry is not None else dn
        attributes = connection.get_attributes(source, self.config.attributes)
        if isinstance(attributes, Failure):
            self._logger.warning(
                "user_attributes_unavailable",
                dn=dn,
                error=attributes.failure().message,
            )
            return DirectoryEntry(dn=dn)
        return DirectoryEntry(dn=dn, attributes=attributes.unwrap())

    def _classify_failure(
        self,
        login: LoginStateMachine,
        connection: DirectoryConnection,
        reason: str,
    ) -> AuthResult:
        """Phase Classify: map the last diagnostic to configured messages."""
        diagnostic = connection.last_diagnostic_message()
        failures = classify_diagnostic(diagnostic, self.config.errors, self.config.flash)

        if not diagnostic:
            self._logger.info("diagnostic_unavailable", reason=reason)
        elif not failures:
            self._logger.info("diagnostic_unclassified", reason=reason, diagnostic=diagnostic)

        login.process_event(
            UserBindFailed(
                reason=reason,
                diagnostic=diagnostic,
                matched_codes=tuple(f.code for f in failures if f.code),
            )
        )

        self._logger.info(
            "authenticate_failed",
            username=login.context.username,
            state=login.state.name,
            messages=len(failures),
        )

        if failures and self.notifier is not None:
            self.notifier(list(failures))

        return AuthResult.failure_result(failures, diagnostic=diagnostic)

    def last_trace(self) -> List[Transition]:
        """Transitions of the most recent attempt (no credentials)."""
        if self._last_login is None:
            return []
        return self._last_login.get_trace()

    def export_trace_json(self) -> str:
        """Audit trace of the most recent attempt as JSON."""
        if self._last_login is None:
            return "{}"
        return self._last_login.export_trace_json()

    def close(self) -> None:
        """Unbind and close the connection. Idempotent."""
        if self._connection is not None:
            self._connection.close()

    def __enter__(self) -> "LDAPAuthenticator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _require_connection(self) -> DirectoryConnection:
        if self._connection is None or self._connection.closed:
            raise StateError("Authenticator is closed")
        return self._connection


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_ldap_authenticator(
    settings: Dict[str, Any],
    notifier: Optional[Notifier] = None,
) -> LDAPAuthenticator:
    """
    Create an authenticator from the host application's settings.

    Args:
        settings: Settings mapping with an ``Ldap`` block
            (see DirectoryConfig.from_mapping)
        notifier: Receives classified failure messages

    Returns:
        Connected LDAPAuthenticator
    """
    config = DirectoryConfig.from_mapping(settings)
    return LDAPAuthenticator(config=config, notifier=notifier)
