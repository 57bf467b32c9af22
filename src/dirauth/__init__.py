"""
dirauth - LDAP Directory Authentication

Authenticates a username/password pair against an LDAP directory and
returns the user's directory attributes on success.

Login Protocol:
- Optional service-account bind and search for the user's DN
- Rebind as the user with the supplied password
- Classification of the server's diagnostic message into configured
  user-facing messages on failure

Example Usage:
    from dirauth import DirectoryConfig, LDAPAuthenticator

    config = DirectoryConfig(
        host="ldap://dc.example.com",
        bind_account="CN=svc,OU=Service,DC=example,DC=com",
        bind_password="secret",
        base_dn="OU=Staff,DC=example,DC=com",
        filter="(sAMAccountName={username})",
        errors={"data 52e": "Invalid username or password"},
    )
    with LDAPAuthenticator(config) as auth:
        result = auth.authenticate("jdoe", "password")
        if result.success:
            print(result.attributes)
"""

from dirauth.core.types import AuthOutcome, AuthResult, DirectoryEntry, FailureDetail
from dirauth.ldap.authenticator import LDAPAuthenticator, create_ldap_authenticator
from dirauth.ldap.config import DirectoryConfig
from dirauth.ldap.diagnostics import ACTIVE_DIRECTORY_ERRORS, DiagnosticRule
from dirauth.notify import SessionFlashWriter

__version__ = "0.1.0"

__all__ = [
    # Main API
    "LDAPAuthenticator",
    "DirectoryConfig",
    "create_ldap_authenticator",
    # Diagnostics
    "DiagnosticRule",
    "ACTIVE_DIRECTORY_ERRORS",
    "SessionFlashWriter",
    # Types
    "AuthOutcome",
    "AuthResult",
    "DirectoryEntry",
    "FailureDetail",
    # Metadata
    "__version__",
]
