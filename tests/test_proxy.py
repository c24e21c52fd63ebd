"""Tests for trusted-proxy client address resolution."""

import pytest

from formpipe.config import TrustPolicy
from formpipe.http.proxy import (
    TrustedProxyResolver,
    build_request_context,
    in_cidr,
    normalize_header_name,
    strip_port,
)


@pytest.fixture
def resolver():
    """Resolver trusting a private proxy range on both families."""
    return TrustedProxyResolver(TrustPolicy(trusted_proxies=("10.0.0.0/8", "fd00::/8")))


class TestInCidr:
    """Test CIDR membership for both address families."""

    def test_ipv4_inside_range(self):
        assert in_cidr("10.1.2.3", "10.0.0.0/8")

    def test_ipv4_outside_range(self):
        assert not in_cidr("11.1.2.3", "10.0.0.0/8")

    def test_ipv4_nine_bit_boundary(self):
        """The /9 boundary splits 10.0.0.0/8 at 10.128.0.0."""
        assert in_cidr("10.1.2.3", "10.0.0.0/9")
        assert in_cidr("10.127.255.255", "10.0.0.0/9")
        assert not in_cidr("10.128.2.3", "10.0.0.0/9")

    def test_ipv4_slash_zero_matches_everything(self):
        assert in_cidr("8.8.8.8", "0.0.0.0/0")
        assert in_cidr("255.255.255.255", "0.0.0.0/0")

    def test_ipv4_slash_32_is_exact(self):
        assert in_cidr("1.2.3.4", "1.2.3.4/32")
        assert not in_cidr("1.2.3.5", "1.2.3.4/32")

    def test_ipv6_whole_bytes(self):
        assert in_cidr("2001:db8::1", "2001:db8::/32")
        assert not in_cidr("2001:db9::1", "2001:db8::/32")

    def test_ipv6_partial_byte(self):
        """/7 keeps the top seven bits of the first byte: fc and fd, not fe."""
        assert in_cidr("fc00::1", "fc00::/7")
        assert in_cidr("fd12:3456::1", "fc00::/7")
        assert not in_cidr("fe80::1", "fc00::/7")

    def test_ipv6_slash_zero_matches_everything(self):
        assert in_cidr("2606:4700:4700::1111", "::/0")

    def test_literal_equality_without_prefix(self):
        assert in_cidr("1.1.1.1", "1.1.1.1")
        assert in_cidr("::1", "0:0:0:0:0:0:0:1")
        assert not in_cidr("1.1.1.2", "1.1.1.1")

    def test_family_mismatch(self):
        assert not in_cidr("10.0.0.1", "::/0")
        assert not in_cidr("fd00::1", "0.0.0.0/0")

    def test_invalid_input(self):
        assert not in_cidr("not-an-ip", "10.0.0.0/8")
        assert not in_cidr("10.0.0.1", "10.0.0.0/abc")
        assert not in_cidr("10.0.0.1", "10.0.0.0/33")


class TestHelpers:
    """Test header name normalization and port stripping."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("X-Forwarded-For", "x-forwarded-for"),
            ("HTTP_X_FORWARDED_FOR", "x-forwarded-for"),
            ("forwarded", "forwarded"),
            ("HTTP_USER_AGENT", "user-agent"),
        ],
    )
    def test_normalize_header_name(self, name, expected):
        assert normalize_header_name(name) == expected

    @pytest.mark.parametrize(
        ("token", "expected"),
        [
            ('"[2606:4700:4700::1111]:4711"', "2606:4700:4700::1111"),
            ("[2606:4700:4700::1111]", "2606:4700:4700::1111"),
            ("93.184.216.34:8080", "93.184.216.34"),
            ("2606:4700:4700::1111", "2606:4700:4700::1111"),
            (" 1.1.1.1 ", "1.1.1.1"),
        ],
    )
    def test_strip_port(self, token, expected):
        assert strip_port(token) == expected


class TestFilterIp:
    """Test address validation and non-routable filtering."""

    def test_public_addresses_pass(self, resolver):
        assert resolver.filter_ip("8.8.8.8") == "8.8.8.8"
        assert resolver.filter_ip(' "[2606:4700:4700::1111]" ') == "2606:4700:4700::1111"

    @pytest.mark.parametrize(
        "address",
        ["10.0.0.1", "192.168.1.1", "127.0.0.1", "169.254.1.1", "0.0.0.0", "224.0.0.1", "::1", "fe80::1"],
    )
    def test_non_routable_rejected(self, resolver, address):
        assert resolver.filter_ip(address) is None

    def test_non_routable_allowed_by_policy(self):
        resolver = TrustedProxyResolver(TrustPolicy(allow_private=True))
        assert resolver.filter_ip("192.168.1.1") == "192.168.1.1"

    def test_garbage_rejected(self, resolver):
        assert resolver.filter_ip("unknown") is None
        assert resolver.filter_ip("") is None
        assert resolver.filter_ip(None) is None


class TestResolve:
    """Test header selection and the trusted-peer rule."""

    def test_untrusted_peer_ignores_headers(self, resolver):
        """A spoofed header from an unknown peer is never honored."""
        headers = {"X-Forwarded-For": "1.1.1.1", "Forwarded": "for=1.1.1.1"}
        assert resolver.resolve(headers, "8.8.8.8") == "8.8.8.8"

    def test_untrusted_private_peer_yields_none(self, resolver):
        assert resolver.resolve({"X-Forwarded-For": "1.1.1.1"}, "192.168.0.10") is None

    def test_missing_remote_addr(self, resolver):
        assert resolver.resolve({"X-Forwarded-For": "1.1.1.1"}, None) is None

    def test_forwarded_header_ipv6_with_port(self, resolver):
        headers = {"Forwarded": 'for="[2606:4700:4700::1111]:4711";proto=https, for=1.1.1.1'}
        assert resolver.resolve(headers, "10.0.0.2") == "2606:4700:4700::1111"

    def test_forwarded_skips_invalid_elements(self, resolver):
        headers = {"Forwarded": "for=unknown, for=192.168.1.5;by=10.0.0.2, proto=http;for=1.1.1.1"}
        assert resolver.resolve(headers, "10.0.0.2") == "1.1.1.1"

    def test_x_forwarded_for_first_valid(self, resolver):
        headers = {"X-Forwarded-For": "unknown, 10.0.0.1, 93.184.216.34:8080, 8.8.8.8"}
        assert resolver.resolve(headers, "10.0.0.2") == "93.184.216.34"

    def test_header_priority_order(self, resolver):
        headers = {
            "X-Real-IP": "8.8.4.4",
            "X-Forwarded-For": "8.8.8.8",
            "Forwarded": "for=1.1.1.1",
        }
        assert resolver.resolve(headers, "10.0.0.2") == "1.1.1.1"

    def test_falls_through_to_next_header(self, resolver):
        headers = {"Forwarded": "for=unknown", "X-Forwarded-For": "192.168.0.1", "X-Real-IP": "8.8.4.4"}
        assert resolver.resolve(headers, "10.0.0.2") == "8.8.4.4"

    def test_wsgi_style_headers(self, resolver):
        assert resolver.resolve({"HTTP_X_FORWARDED_FOR": "1.1.1.1"}, "10.0.0.2") == "1.1.1.1"

    def test_trusted_ipv6_peer(self, resolver):
        assert resolver.resolve({"X-Real-IP": "1.1.1.1"}, "fd00::5") == "1.1.1.1"

    def test_trusted_peer_without_valid_headers_falls_back(self):
        resolver = TrustedProxyResolver(TrustPolicy(trusted_proxies=("93.184.216.0/24",)))
        assert resolver.resolve({"X-Forwarded-For": "garbage"}, "93.184.216.34") == "93.184.216.34"

    def test_custom_header_list(self):
        policy = TrustPolicy(trusted_proxies=("10.0.0.0/8",), headers=("CF-Connecting-IP",))
        resolver = TrustedProxyResolver(policy)
        headers = {"CF-Connecting-IP": "1.1.1.1", "X-Forwarded-For": "8.8.8.8"}
        assert resolver.resolve(headers, "10.0.0.2") == "1.1.1.1"

    def test_literal_trusted_proxy(self):
        resolver = TrustedProxyResolver(TrustPolicy(trusted_proxies=("10.0.0.2",)))
        assert resolver.resolve({"X-Forwarded-For": "1.1.1.1"}, "10.0.0.2") == "1.1.1.1"
        assert resolver.resolve({"X-Forwarded-For": "1.1.1.1"}, "10.0.0.3") is None


class TestBuildRequestContext:
    """Test request context construction."""

    def test_full_context(self, resolver):
        headers = {
            "X-Forwarded-For": "1.1.1.1",
            "User-Agent": "pytest/1.0",
            "Referer": "https://example.com/contact",
            "X-Request-ID": "req-123",
        }
        context = build_request_context(resolver, headers, "10.0.0.2")

        assert context["client"] == {"ip": "1.1.1.1", "ua": "pytest/1.0", "request_id": "req-123"}
        assert context["server"] == {"referer": "https://example.com/contact"}
        assert context["remote_addr"] == "10.0.0.2"
        assert context["headers"]["user-agent"] == "pytest/1.0"

    def test_attach_flags_disabled(self):
        policy = TrustPolicy(attach_user_agent=False, attach_referer=False)
        resolver = TrustedProxyResolver(policy)
        headers = {"User-Agent": "pytest/1.0", "Referer": "https://example.com/"}

        context = build_request_context(resolver, headers, "8.8.8.8")

        assert context["client"] == {"ip": "8.8.8.8"}
        assert context["server"] == {}

    def test_country_header(self):
        resolver = TrustedProxyResolver(TrustPolicy(country_header="CF-IPCountry"))
        context = build_request_context(resolver, {"CF-IPCountry": "DE"}, "8.8.8.8")
        assert context["client"]["country"] == "DE"

    def test_explicit_request_id_wins(self, resolver):
        context = build_request_context(resolver, {"X-Request-ID": "from-header"}, "8.8.8.8", request_id="explicit")
        assert context["client"]["request_id"] == "explicit"

    def test_empty_values_omitted(self, resolver):
        context = build_request_context(resolver, {}, None)
        assert context["client"] == {}
        assert context["server"] == {}
