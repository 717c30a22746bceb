"""Client IP resolution behind CDNs and proxies."""

import ipaddress
from collections.abc import Mapping

# Checked in order; the first header carrying a public IP wins
IP_HEADERS = (
    "cf-connecting-ip",
    "x-real-ip",
    "x-forwarded-for",
    "x-forwarded",
    "x-cluster-client-ip",
    "forwarded-for",
    "forwarded",
)


def _candidates(header: str, value: str) -> list[str]:
    """Split a header value into candidate addresses."""
    if header == "forwarded":
        # RFC 7239: for=192.0.2.60;proto=http, for="[2001:db8::1]"
        found = []
        for element in value.split(","):
            for pair in element.split(";"):
                name, _, raw = pair.strip().partition("=")
                if name.lower() == "for" and raw:
                    found.append(raw.strip('"').strip("[]"))
        return found
    return [part.strip() for part in value.split(",") if part.strip()]


def _strip_port(candidate: str) -> str:
    # IPv4 with port ("1.2.3.4:5678"); bare IPv6 has more than one colon
    if candidate.count(":") == 1:
        return candidate.split(":", 1)[0]
    return candidate


def is_public_ip(candidate: str | None) -> bool:
    """
    Check that a string is a valid, globally routable IP address.

    Args:
        candidate: String to check

    Returns:
        True for public IPv4/IPv6 addresses, False otherwise
    """
    if not candidate:
        return False
    try:
        return ipaddress.ip_address(candidate).is_global
    except ValueError:
        return False


def resolve_client_ip(
    headers: Mapping[str, str], remote_addr: str | None = None
) -> str | None:
    """
    Resolve the originating client IP.

    Args:
        headers: Request headers (any case)
        remote_addr: Socket peer address, used when no header qualifies

    Returns:
        The client IP, or None when nothing usable is available
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    for header in IP_HEADERS:
        value = lowered.get(header)
        if not value:
            continue
        for candidate in _candidates(header, value):
            candidate = _strip_port(candidate)
            if is_public_ip(candidate):
                return candidate

    if remote_addr:
        try:
            ipaddress.ip_address(remote_addr)
        except ValueError:
            return None
        return remote_addr
    return None
