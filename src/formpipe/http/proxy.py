"""Trusted-proxy client address resolution.

Forwarding headers are attacker-controlled unless they were written by a
proxy we trust. The resolver therefore honors them only when the direct peer
(``remote_addr``) falls inside a configured trusted CIDR; otherwise the
filtered peer address is returned as-is.

Header parsing:
    Forwarded        RFC 7239: elements split on ',', pairs on ';', uses ``for=``
    X-Forwarded-For  comma-separated address list
    anything else    single address value

Within each header the first address that validates wins; headers are tried
in policy order, then the filtered peer address is the fallback.
"""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Mapping
from typing import Any

from formpipe.config import TrustPolicy

logger = logging.getLogger(__name__)

FORWARDED = "forwarded"
X_FORWARDED_FOR = "x-forwarded-for"

_QUOTES = "\"'"


def normalize_header_name(name: str) -> str:
    """Normalize HTTP or WSGI-style header names to lowercase dashed form.

    ``HTTP_X_FORWARDED_FOR`` and ``X-Forwarded-For`` both become
    ``x-forwarded-for``.
    """
    normalized = name.strip().lower().replace("_", "-")
    if normalized.startswith("http-"):
        normalized = normalized[len("http-") :]
    return normalized


def normalize_headers(headers: Mapping[str, Any] | None) -> dict[str, str]:
    """Lowercase header mapping; the first occurrence of a duplicate name wins."""
    result: dict[str, str] = {}
    for name, value in (headers or {}).items():
        if value is None:
            continue
        key = normalize_header_name(str(name))
        if key not in result:
            result[key] = value if isinstance(value, str) else str(value)
    return result


def strip_port(value: str) -> str:
    """Strip quoting, IPv6 brackets and a trailing port from an address token.

    Examples:
        '"[2001:db8::1]:4711"' -> '2001:db8::1'
        '192.0.2.60:8080'      -> '192.0.2.60'
        '2001:db8::1'          -> '2001:db8::1'
    """
    token = value.strip().strip(_QUOTES).strip()
    if token.startswith("["):
        end = token.find("]")
        return token[1:end] if end != -1 else token[1:]
    # Exactly one colon: IPv4 (or hostname) with port. Bare IPv6 has several.
    if token.count(":") == 1:
        return token.split(":", 1)[0]
    return token


def in_cidr(ip: str, cidr: str) -> bool:
    """Check whether an address falls within a CIDR range.

    A ``cidr`` without ``/`` is compared for literal equality. IPv4 ranges use
    32-bit integer masking; IPv6 ranges compare whole bytes, then mask the
    remaining partial byte. ``/0`` matches every address of the family.

    Args:
        ip: Address to test
        cidr: Range like ``10.0.0.0/8`` or ``fd00::/8``, or a literal address

    Returns:
        True if ``ip`` is inside ``cidr``; False for unparsable input or a
        family mismatch
    """
    if "/" not in cidr:
        return _literal_equal(ip, cidr)

    network, _, bits_text = cidr.partition("/")
    try:
        address = ipaddress.ip_address(_clean(ip))
        base = ipaddress.ip_address(_clean(network))
        bits = int(bits_text)
    except ValueError:
        return False

    if address.version != base.version:
        return False

    if address.version == 4:
        if not 0 <= bits <= 32:
            return False
        mask = 0 if bits == 0 else (0xFFFFFFFF << (32 - bits)) & 0xFFFFFFFF
        return (int(address) & mask) == (int(base) & mask)

    if not 0 <= bits <= 128:
        return False
    address_bytes = address.packed
    base_bytes = base.packed
    whole_bytes, remainder_bits = divmod(bits, 8)
    if address_bytes[:whole_bytes] != base_bytes[:whole_bytes]:
        return False
    if remainder_bits == 0:
        return True
    mask = ~((1 << (8 - remainder_bits)) - 1) & 0xFF
    return (address_bytes[whole_bytes] & mask) == (base_bytes[whole_bytes] & mask)


class TrustedProxyResolver:
    """Resolves the best-effort client address for a request.

    Attributes:
        policy: Trust policy (trusted ranges, header priority, flags)
    """

    def __init__(self, policy: TrustPolicy | None = None) -> None:
        self.policy = policy or TrustPolicy()
        self._header_order = [normalize_header_name(h) for h in self.policy.headers]

    def resolve(self, headers: Mapping[str, Any] | None, remote_addr: str | None) -> str | None:
        """Resolve the client address.

        Args:
            headers: Request headers (HTTP or WSGI-style names)
            remote_addr: Address of the direct peer

        Returns:
            Client address, or None if nothing validates
        """
        if not remote_addr or not self.is_trusted(remote_addr):
            return self.filter_ip(remote_addr)

        normalized = normalize_headers(headers)
        for name in self._header_order:
            value = normalized.get(name, "")
            if not value.strip():
                continue
            if name == FORWARDED:
                candidate = self._from_forwarded(value)
            elif name == X_FORWARDED_FOR:
                candidate = self._from_address_list(value)
            else:
                candidate = self.filter_ip(value)
            if candidate:
                logger.debug(f"Client address {candidate} taken from {name} via trusted peer {remote_addr}")
                return candidate

        return self.filter_ip(remote_addr)

    def is_trusted(self, remote_addr: str) -> bool:
        """Check if the direct peer is inside any trusted range."""
        peer = _clean(remote_addr)
        if not peer:
            return False
        return any(in_cidr(peer, cidr) for cidr in self.policy.trusted_proxies)

    def filter_ip(self, value: str | None) -> str | None:
        """Validate an address, rejecting non-routable ranges unless allowed.

        Args:
            value: Candidate address, possibly quoted or bracketed

        Returns:
            The cleaned address, or None if invalid or filtered out
        """
        if not value:
            return None
        candidate = _clean(value)
        try:
            address = ipaddress.ip_address(candidate)
        except ValueError:
            return None
        if not self.policy.allow_private and _is_non_routable(address):
            return None
        return candidate

    def _from_forwarded(self, value: str) -> str | None:
        for element in value.split(","):
            for pair in element.split(";"):
                key, sep, param = pair.partition("=")
                if not sep or key.strip().lower() != "for":
                    continue
                candidate = self.filter_ip(strip_port(param))
                if candidate:
                    return candidate
        return None

    def _from_address_list(self, value: str) -> str | None:
        for part in value.split(","):
            candidate = self.filter_ip(strip_port(part))
            if candidate:
                return candidate
        return None


def build_request_context(
    resolver: TrustedProxyResolver,
    headers: Mapping[str, Any] | None,
    remote_addr: str | None,
    *,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Build the client/server request context seeded into pipeline meta.

    Args:
        resolver: Resolver carrying the trust policy
        headers: Request headers
        remote_addr: Address of the direct peer
        request_id: Explicit request id; read from the policy header otherwise

    Returns:
        ``{"client": {...}, "server": {...}, "headers": {...}, "remote_addr": ...}``
        with empty values omitted from ``client``/``server``
    """
    policy = resolver.policy
    normalized = normalize_headers(headers)

    client: dict[str, str] = {}
    ip = resolver.resolve(normalized, remote_addr)
    if ip:
        client["ip"] = ip
    if policy.attach_user_agent and normalized.get("user-agent"):
        client["ua"] = normalized["user-agent"]
    if policy.country_header:
        country = normalized.get(normalize_header_name(policy.country_header), "").strip()
        if country:
            client["country"] = country
    rid = request_id or normalized.get(normalize_header_name(policy.request_id_header), "")
    if rid:
        client["request_id"] = rid

    server: dict[str, str] = {}
    if policy.attach_referer and normalized.get("referer"):
        server["referer"] = normalized["referer"]

    return {
        "client": client,
        "server": server,
        "headers": normalized,
        "remote_addr": remote_addr or "",
    }


def _clean(value: str) -> str:
    token = value.strip().strip(_QUOTES).strip()
    if token.startswith("[") and token.endswith("]"):
        token = token[1:-1]
    return token


def _literal_equal(ip: str, other: str) -> bool:
    left, right = _clean(ip), _clean(other)
    try:
        return ipaddress.ip_address(left) == ipaddress.ip_address(right)
    except ValueError:
        return left == right


def _is_non_routable(address: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    )
