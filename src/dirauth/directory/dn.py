"""
DirAuth Distinguished Name Helpers

Thin wrappers around ldap3's DN parser for comparing, joining, and
scoping distinguished names.
"""

from __future__ import annotations

from typing import List

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import escape_rdn, parse_dn


def rdns(dn: str) -> List[str]:
    """
    Split a DN into normalized RDN strings (lowercase, no padding).

    Multi-valued RDNs keep their "+" separator.

    Raises:
        LDAPInvalidDnError: If the DN is syntactically invalid
    """
    if not dn.strip():
        return []

    result: List[str] = []
    current = ""
    for attr, value, sep in parse_dn(dn, escape=False, strip=True):
        current += f"{attr.strip().lower()}={value.strip().lower()}"
        if sep == "+":
            current += "+"
        else:
            result.append(current)
            current = ""
    return result


def normalize_dn(dn: str) -> str:
    """Normalize a DN for comparison."""
    return ",".join(rdns(dn))


def join_dn(*parts: str) -> str:
    """Join DN fragments, skipping empty ones."""
    return ",".join(p.strip() for p in parts if p and p.strip())


def parent_dn(dn: str) -> str:
    """Return the normalized parent of a DN (empty for the root)."""
    return ",".join(rdns(dn)[1:])


def is_descendant(dn: str, base: str) -> bool:
    """Check if dn equals base or lies in the subtree below it."""
    entry_rdns = rdns(dn)
    base_rdns = rdns(base)
    if len(base_rdns) > len(entry_rdns):
        return False
    return entry_rdns[len(entry_rdns) - len(base_rdns) :] == base_rdns


def is_valid_dn(dn: str) -> bool:
    """Check if a DN parses."""
    try:
        rdns(dn)
    except LDAPInvalidDnError:
        return False
    return True


def escape_dn_value(value: str) -> str:
    """Escape a value for use inside an RDN (RFC 4514)."""
    return escape_rdn(value)
