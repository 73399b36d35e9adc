"""
DirAuth Directory Discovery

Locates LDAP servers for a DNS domain using SRV records (RFC 2782).

Queries: _ldap._tcp.<domain>
"""

from __future__ import annotations

from typing import Dict, List, Tuple

import dns.exception
import dns.resolver
import structlog

logger = structlog.get_logger()


def discover_ldap_servers(domain: str, lifetime: float = 5.0) -> List[Tuple[str, int]]:
    """
    Discover LDAP servers for a domain using DNS SRV records.

    Args:
        domain: DNS domain name (e.g., "example.org")
        lifetime: Total DNS resolution time budget in seconds

    Returns:
        List of (hostname, port) tuples sorted by priority, then weight
    """
    srv_name = f"_ldap._tcp.{domain.lower().strip('.')}"
    servers: List[Dict[str, object]] = []

    try:
        answers = dns.resolver.resolve(srv_name, "SRV", lifetime=lifetime)
    except dns.exception.DNSException as e:
        logger.debug("dns_srv_lookup_failed", name=srv_name, error=str(e))
        return []

    for rdata in answers:
        servers.append({
            "host": str(rdata.target).rstrip("."),
            "port": rdata.port,
            "priority": rdata.priority,
            "weight": rdata.weight,
        })

    # Lower priority is preferred, then higher weight
    servers.sort(key=lambda s: (s["priority"], -s["weight"]))

    logger.debug("dns_srv_lookup", name=srv_name, servers=len(servers))
    return [(str(s["host"]), int(s["port"])) for s in servers]


def domain_to_base_dn(domain: str) -> str:
    """
    Derive a dc= base DN from a DNS domain.

    Example:
        "example.org" -> "dc=example,dc=org"
    """
    labels = [label.strip() for label in domain.strip(".").split(".") if label.strip()]
    return ",".join(f"dc={label.lower()}" for label in labels)
