#!/usr/bin/env python3
"""
Directory Login Example

Demonstrates how to authenticate users against an LDAP directory with
dirauth's LDAPAuthenticator.

Features:
1. Loading settings from an application config mapping
2. Service-account lookup followed by the user bind
3. Classified failure messages written to a session flash store
4. Login trace export for auditing

Environment:
    LDAP_HOST           Directory server host or ldap:// URL
    LDAP_BASE_DN        Subtree root for user searches
    LDAP_BIND_ACCOUNT   Service account DN (omit for direct-bind mode)
    LDAP_BIND_PASSWORD  Service account password
    LDAP_USERNAME       User to log in
    LDAP_PASSWORD       Password of that user
"""

import os

from dirauth import ACTIVE_DIRECTORY_ERRORS, SessionFlashWriter, create_ldap_authenticator
from dirauth.core.exceptions import ConfigError, ConnectError


def main():
    """Demonstrate a directory login."""

    print("=" * 70)
    print("dirauth - Directory Login")
    print("=" * 70)
    print()

    # ==========================================================================
    # EXAMPLE 1: Build the authenticator from settings
    # ==========================================================================
    print("1. Build Authenticator")
    print("-" * 40)

    settings = {
        "Ldap": {
            "host": os.environ.get("LDAP_HOST"),
            "baseDN": os.environ.get("LDAP_BASE_DN", ""),
            "bindAccount": os.environ.get("LDAP_BIND_ACCOUNT"),
            "bindPassword": os.environ.get("LDAP_BIND_PASSWORD"),
            "filter": "(sAMAccountName={username})",
            "return": ["mail", "displayName", "memberOf"],
            "errors": dict(ACTIVE_DIRECTORY_ERRORS),
            "flash": {"key": "auth"},
        }
    }

    session = {}
    try:
        auth = create_ldap_authenticator(settings, notifier=SessionFlashWriter(session))
    except ConfigError as e:
        print(f"   Configuration error: {e}")
        print("   (set LDAP_HOST and friends, see module docstring)")
        return
    except ConnectError as e:
        print(f"   Connection error: {e}")
        return

    print(f"   Host: {auth.host}")
    print(f"   Service Account: {auth.config.has_service_account}")
    print()

    # ==========================================================================
    # EXAMPLE 2: Authenticate
    # ==========================================================================
    print("2. Authenticate")
    print("-" * 40)

    with auth:
        result = auth.authenticate(
            os.environ.get("LDAP_USERNAME"),
            os.environ.get("LDAP_PASSWORD"),
        )

        if result.success:
            print("   Login: SUCCESS")
            print(f"   DN: {result.dn}")
            for name, values in result.attributes.items():
                print(f"   {name}: {', '.join(values)}")
        elif not result.attempted:
            print("   Login: NOT ATTEMPTED (set LDAP_USERNAME and LDAP_PASSWORD)")
        else:
            print("   Login: FAILED")
            for message in result.messages or ("(no user-facing message)",):
                print(f"   Message: {message}")
            print(f"   Session: {session}")
        print()

        # ======================================================================
        # EXAMPLE 3: Export the login trace
        # ======================================================================
        print("3. Login Trace")
        print("-" * 40)

        for transition in auth.last_trace():
            print(
                f"   {transition.from_state.name} --{transition.event_type}--> "
                f"{transition.to_state.name}"
            )
        print()


if __name__ == "__main__":
    main()
