"""
Property-based tests for login invariants.

Tests that classification, filter building and the login flow keep
their guarantees across many random inputs.
"""

from hypothesis import assume, given, settings, strategies as st
from structlog.testing import capture_logs

from dirauth.core.types import AuthOutcome
from dirauth.ldap.authenticator import LDAPAuthenticator
from dirauth.ldap.config import DirectoryConfig, template_filter
from dirauth.ldap.connection import DirectoryConnection
from dirauth.ldap.diagnostics import (
    ACTIVE_DIRECTORY_ERRORS,
    DiagnosticRule,
    classify_diagnostic,
)
from tests.conftest import (
    BASE_DN,
    SERVICE_DN,
    SERVICE_PASSWORD,
    USER_DN,
    USER_PASSWORD,
    FakeDirectory,
    FakeLdap3Connection,
)


# =============================================================================
# STRATEGIES
# =============================================================================

# Strategy for diagnostic codes (short printable substrings)
code_strategy = st.text(
    alphabet=st.characters(categories=("L", "N"), include_characters=" "),
    min_size=1,
    max_size=12,
)

rule_strategy = st.builds(
    DiagnosticRule,
    code=code_strategy,
    message=st.text(min_size=1, max_size=40),
)

# Strategy for usernames, including filter metacharacters
username_strategy = st.text(
    alphabet=st.characters(exclude_categories=("Cs",)),
    min_size=1,
    max_size=40,
)

# Strategy for passwords
password_strategy = st.text(
    alphabet=st.characters(categories=("L", "N", "P")),
    min_size=8,
    max_size=64,
)


def build_authenticator() -> tuple:
    """Service-account authenticator over a fresh in-memory directory."""
    directory = FakeDirectory()
    directory.add_user(SERVICE_DN, SERVICE_PASSWORD)
    directory.add_user(
        USER_DN,
        USER_PASSWORD,
        attributes={"mail": ["jdoe@example.com"]},
        filters=["(sAMAccountName=jdoe)"],
    )
    ldap3_connection = FakeLdap3Connection(directory)
    config = DirectoryConfig(
        host="ldap://dc.example.com",
        bind_account=SERVICE_DN,
        bind_password=SERVICE_PASSWORD,
        base_dn=BASE_DN,
        errors=ACTIVE_DIRECTORY_ERRORS,
    )
    auth = LDAPAuthenticator(
        config=config,
        connection=DirectoryConnection(host="ldap.example.com", connection=ldap3_connection),
    )
    return auth, ldap3_connection


# =============================================================================
# CLASSIFICATION PROPERTIES
# =============================================================================


class TestClassificationProperties:
    """Property-based tests for classify_diagnostic."""

    @given(st.lists(rule_strategy, max_size=8), st.text(max_size=120))
    def test_matches_are_ordered_subset(self, rules, diagnostic):
        """Property: Messages are exactly the matching rules, in rule order."""
        failures = classify_diagnostic(diagnostic, rules)

        expected = [r.code for r in rules if diagnostic and r.code in diagnostic]
        assert [f.code for f in failures] == expected

    @given(st.lists(rule_strategy, max_size=8), st.text(max_size=120))
    def test_unmatched_diagnostic_yields_nothing(self, rules, diagnostic):
        """Property: No rule code in the diagnostic means no user message."""
        assume(all(r.code not in diagnostic for r in rules))
        assert classify_diagnostic(diagnostic, rules) == ()

    @given(st.lists(rule_strategy, max_size=8))
    def test_absent_diagnostic_yields_nothing(self, rules):
        """Property: Absent diagnostics never produce messages."""
        assert classify_diagnostic(None, rules) == ()
        assert classify_diagnostic("", rules) == ()

    @given(st.text(max_size=120))
    def test_failures_carry_raw_diagnostic(self, diagnostic):
        """Property: Every failure keeps the text it was classified from."""
        rules = [DiagnosticRule(code=c, message=m) for c, m in ACTIVE_DIRECTORY_ERRORS]
        for failure in classify_diagnostic(diagnostic, rules):
            assert failure.diagnostic == diagnostic


# =============================================================================
# FILTER PROPERTIES
# =============================================================================


class TestFilterProperties:
    """Property-based tests for template filters."""

    @given(username_strategy)
    def test_username_cannot_change_filter_structure(self, username):
        """Property: Escaped usernames contain no filter metacharacters."""
        build = template_filter("(uid={username})")
        search_filter = build(username)

        assert search_filter.startswith("(uid=")
        assert search_filter.endswith(")")
        value = search_filter[len("(uid="):-1]
        for char in ("*", "(", ")", "\x00"):
            assert char not in value

    @given(st.from_regex(r"[a-z][a-z0-9_.]{0,19}", fullmatch=True))
    def test_plain_usernames_unchanged(self, username):
        """Property: Usernames without metacharacters are inserted verbatim."""
        build = template_filter("(sAMAccountName={username})")
        assert build(username) == f"(sAMAccountName={username})"


# =============================================================================
# LOGIN PROPERTIES
# =============================================================================


class TestLoginProperties:
    """Property-based tests for the login flow."""

    @settings(max_examples=50)
    @given(password_strategy)
    def test_wrong_password_never_succeeds(self, password):
        """Property: Only the directory's password authenticates the user."""
        assume(password != USER_PASSWORD)
        auth, _ = build_authenticator()

        result = auth.authenticate("jdoe", password)

        assert result.outcome is AuthOutcome.FAILURE
        assert result.attributes == {}

    @settings(max_examples=50)
    @given(password_strategy)
    def test_password_never_logged(self, password):
        """Property: The supplied password appears in no log event or trace."""
        password = f"Pw!{password}"
        auth, _ = build_authenticator()

        with capture_logs() as logs:
            auth.authenticate("jdoe", password)

        for event in logs:
            assert password not in [str(v) for v in event.values()]
        assert f'"{password}"' not in auth.export_trace_json()

    @settings(max_examples=50)
    @given(username_strategy, password_strategy)
    def test_one_service_and_one_user_bind(self, username, password):
        """Property: Every attempted login performs exactly two binds."""
        auth, ldap3_connection = build_authenticator()

        auth.authenticate(username, password)

        assert len(ldap3_connection.bind_calls) == 2
        assert ldap3_connection.bind_calls[0] == SERVICE_DN
