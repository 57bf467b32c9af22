"""
dirauth LDAP Module

Components:
- connection: DirectoryConnection over ldap3
- config: DirectoryConfig and settings loading
- diagnostics: Diagnostic rules and classification
- authenticator: LDAPAuthenticator, the two-phase bind login
"""

from dirauth.ldap.authenticator import (
    LDAPAuthenticator,
    LoginStateMachine,
    create_ldap_authenticator,
)
from dirauth.ldap.config import DirectoryConfig, template_filter
from dirauth.ldap.connection import DirectoryConnection
from dirauth.ldap.diagnostics import (
    ACTIVE_DIRECTORY_ERRORS,
    DiagnosticRule,
    FlashSettings,
    classify_diagnostic,
)
from dirauth.ldap.types import LoginContext, LoginState

__all__ = [
    "LDAPAuthenticator",
    "LoginStateMachine",
    "create_ldap_authenticator",
    "DirectoryConfig",
    "template_filter",
    "DirectoryConnection",
    "ACTIVE_DIRECTORY_ERRORS",
    "DiagnosticRule",
    "FlashSettings",
    "classify_diagnostic",
    "LoginContext",
    "LoginState",
]
