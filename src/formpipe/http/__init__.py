"""Request-side helpers: client address resolution and request context."""

from formpipe.http.proxy import TrustedProxyResolver, build_request_context, in_cidr

__all__ = ["TrustedProxyResolver", "build_request_context", "in_cidr"]
