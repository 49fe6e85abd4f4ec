"""Shared HTTP utilities."""

from __future__ import annotations

import ipaddress
import socket
from urllib.parse import urlparse

_ALLOWED_SCHEMES = frozenset({"http", "https"})


def normalize_base_url(value: str, *, label: str = "base_url") -> str:
    """Normalize and validate a backend base URL.

    Lower-cases the scheme, strips the trailing slash and rejects anything
    that cannot be used as a request prefix.
    """
    candidate = value.strip()
    if not candidate:
        raise ValueError(f"{label} must not be empty")

    parsed = urlparse(candidate)
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
        raise ValueError(f"{label} must use http or https")
    if not parsed.netloc:
        raise ValueError(f"{label} must include host")
    if parsed.query or parsed.fragment:
        raise ValueError(f"{label} must not include query or fragment")
    if parsed.username or parsed.password:
        raise ValueError(f"{label} must not include userinfo")

    normalized_path = parsed.path.rstrip("/")
    return f"{parsed.scheme.lower()}://{parsed.netloc}{normalized_path}"


def validate_fetch_url(url: str) -> str:
    """Validate that a user-supplied URL is safe to fetch.

    Rejects non-HTTP(S) schemes and hosts that resolve to private, loopback,
    link-local or reserved addresses (SSRF protection).

    Returns the validated URL unchanged.

    Raises ``ValueError`` on validation failure.
    """
    parsed = urlparse(url)
    if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
        raise ValueError(f"URL must use http or https: {url}")
    if not parsed.hostname:
        raise ValueError(f"URL has no hostname: {url}")

    try:
        addr_infos = socket.getaddrinfo(parsed.hostname, None, proto=socket.IPPROTO_TCP)
    except socket.gaierror:
        # DNS resolution failure: the fetch itself reports the connection error.
        return url

    for _family, _, _, _, sockaddr in addr_infos:
        ip_str = sockaddr[0]
        ip = ipaddress.ip_address(ip_str)
        if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved:
            raise ValueError(f"URL resolves to non-public address ({ip_str}): {url}")

    return url
