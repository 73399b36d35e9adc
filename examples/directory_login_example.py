#!/usr/bin/env python3
"""
Directory Login Example

Demonstrates how to use DirAuth to verify usernames and passwords against
an LDAP directory. This example shows:
1. Seeding an in-memory directory from LDIF
2. Bind-based and local-hash verification
3. Group lookup
4. Reading the audit trail to tell bad passwords from outages
5. Building the gated web application

Run against a real server instead with:
    auth = create_directory_authenticator(
        "ldap://localhost:8389/dc=springframework,dc=org"
    )
"""

import json
import sys
from pathlib import Path

from returns.result import Failure

from dirauth import (
    ComparisonPolicy,
    DirectoryAuthenticator,
    DirectoryConfig,
    InMemoryDirectory,
    create_directory_authenticator,
)
from dirauth.monitoring import AuditTrail
from dirauth.web import create_app

LDIF = Path(__file__).resolve().parent.parent / "tests" / "data" / "test-server.ldif"

USERS = [
    ("ben", "benspassword"),
    ("bob", "bobspassword"),
    ("ben", "wrong"),
    ("nobody", "whatever"),
    ("ben", ""),
]


def main():
    """Demonstrate directory authentication."""

    print("=" * 60)
    print("DirAuth - Directory Login Example")
    print("=" * 60)
    print()

    directory = InMemoryDirectory.from_ldif(LDIF)
    audit = AuditTrail()

    # ==========================================================================
    # EXAMPLE 1: Bind-based verification
    # ==========================================================================
    print("1. Bind-based verification")
    print("-" * 40)

    auth = create_directory_authenticator(
        "ldap://localhost:8389/dc=springframework,dc=org",
        client=directory,
        audit=audit,
    )

    for username, password in USERS:
        verdict = auth.authenticate(username, password)
        status = "GRANTED" if verdict.authenticated else "DENIED"
        groups = ", ".join(sorted(verdict.groups)) or "-"
        print(f"   {username:<8} {status:<8} groups: {groups}")
    print()

    # ==========================================================================
    # EXAMPLE 2: Local hash comparison
    # ==========================================================================
    print("2. Local hash comparison ({SHA})")
    print("-" * 40)

    config = DirectoryConfig(
        base_dn="dc=springframework,dc=org",
        user_dn_pattern="uid={0},ou=people",
        comparison_policy=ComparisonPolicy.LOCAL_HASH,
        hash_scheme="SHA",
    )
    local_auth = DirectoryAuthenticator(config=config, client=directory, audit=audit)

    for username, password in [("ben", "benspassword"), ("bob", "bobspassword")]:
        result = local_auth.try_authenticate(username, password)
        if isinstance(result, Failure):
            print(f"   {username:<8} DENIED   ({result.failure().kind.value})")
        else:
            print(f"   {username:<8} GRANTED  {result.unwrap().principal_dn}")
    print("   (bob is stored as {SSHA256}, so a {SHA} policy refuses to compare)")
    print()

    # ==========================================================================
    # EXAMPLE 3: Directory outage
    # ==========================================================================
    print("3. Directory outage")
    print("-" * 40)

    directory.online = False
    verdict = auth.authenticate("ben", "benspassword")
    print(f"   authenticated: {verdict.authenticated}")
    print(f"   service_unavailable: {verdict.service_unavailable}")
    directory.online = True
    print()

    # ==========================================================================
    # EXAMPLE 4: Audit trail
    # ==========================================================================
    print("4. Audit trail")
    print("-" * 40)

    for event in audit.history():
        outcome = "ok" if event.success else event.kind.value
        print(f"   {event.username:<8} {outcome}")
    print()
    print(json.dumps(audit.get_statistics(), indent=2))
    print()

    # ==========================================================================
    # EXAMPLE 5: Web application
    # ==========================================================================
    print("5. Web application")
    print("-" * 40)

    app = create_app(auth)
    print(f"   ASGI app ready: {type(app).__name__}")
    print("   Serve it with any ASGI server, e.g. `uvicorn module:app`,")
    print("   then sign in at /login as ben / benspassword")
    return 0


if __name__ == "__main__":
    sys.exit(main())
