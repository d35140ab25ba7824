from collections.abc import Sequence
from functools import lru_cache
import hashlib
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import NamedTuple

from fastapi import Request

from src.main.config import config

UNKNOWN_CLIENT = "unknown"

TrustedNetwork = IPv4Network | IPv6Network


class TrustedProxies(NamedTuple):
    trust_all: bool
    networks: tuple[TrustedNetwork, ...]
    literals: frozenset[str]


def compute_fingerprint(client_ip: str, user_agent: str) -> str:
    """
    Hash the request-origin metadata a token family is bound to.

    Args:
        client_ip: Address of the client as seen by the service
        user_agent: Raw ``User-Agent`` header value

    Returns:
        str: hex-encoded SHA-256 digest
    """
    material = f"{client_ip.strip()}|{user_agent.strip()}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


@lru_cache
def _normalize_trusted_hosts(values: tuple[str, ...]) -> TrustedProxies:
    trust_all = False
    networks: list[TrustedNetwork] = []
    literals: set[str] = set()

    for raw_value in values:
        value = raw_value.strip()
        if not value:
            continue
        if value == "*":
            trust_all = True
            continue
        try:
            networks.append(ip_network(value, strict=False))
            continue
        except ValueError:
            literals.add(value)

    return TrustedProxies(trust_all, tuple(networks), frozenset(literals))


def _is_trusted_host(host: str, proxies: TrustedProxies) -> bool:
    if proxies.trust_all:
        return True
    if host in proxies.literals:
        return True
    try:
        ip = ip_address(host)
    except ValueError:
        return False
    return any(ip in network for network in proxies.networks)


def get_client_ip(request: Request, trusted_hosts: Sequence[str] | None = None) -> str:
    """
    Address of the client behind the request.

    ``X-Forwarded-For`` is only read when the direct peer is a trusted proxy.
    The chain is walked from the right and the first hop that is not itself
    a trusted proxy wins, so a client cannot prepend an address of its choice.
    """
    if trusted_hosts is None:
        trusted_hosts = config.app.TRUSTED_PROXY_HOSTS

    peer = request.client.host if request.client else None
    if peer is None:
        return UNKNOWN_CLIENT

    proxies = _normalize_trusted_hosts(tuple(trusted_hosts))
    if not _is_trusted_host(peer, proxies):
        return peer

    forwarded_for = request.headers.get("x-forwarded-for")
    if not forwarded_for:
        return peer

    hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
    for hop in reversed(hops):
        if not _is_trusted_host(hop, proxies):
            return hop
    return hops[0] if hops else peer


async def get_request_fingerprint(request: Request) -> str:
    """Fingerprint of the current request (client IP + user-agent)."""
    return compute_fingerprint(
        get_client_ip(request), request.headers.get("user-agent", "")
    )
