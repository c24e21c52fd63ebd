"""Annotate the submission with the resolved client address."""

from __future__ import annotations

import html
import logging
from urllib.parse import quote

from formpipe.http.proxy import TrustedProxyResolver
from formpipe.pipeline.hook import Hook, HookContext
from formpipe.pipeline.record import channel_pair

logger = logging.getLogger(__name__)

LOOKUP_URL = "https://ipinfo.io/{ip}"


class AnnotateIpHook(Hook):
    """Copy the client address into ``meta["ip"]`` and a rendered body entry.

    The address comes from the request context's ``client.ip``. When that is
    missing and a resolver is configured, it is resolved from the context
    ``headers`` and ``remote_addr``. The body entry is a two-channel pair:
    plain address for text, a lookup link for HTML.
    """

    label = "annotate_ip"

    def __init__(
        self,
        body_key: str = "Ip",
        lookup_url: str = LOOKUP_URL,
        resolver: TrustedProxyResolver | None = None,
    ) -> None:
        self.body_key = body_key
        self.lookup_url = lookup_url
        self.resolver = resolver

    def on_before_validate(self, ctx: HookContext) -> None:
        ip = self._client_ip(ctx)
        if not ip:
            logger.debug("No client address to annotate")
            return

        record = ctx.record
        record.meta["ip"] = ip
        url = self.lookup_url.format(ip=quote(ip, safe=""))
        link = (
            f'<a href="{html.escape(url, quote=True)}" target="_blank" '
            f'rel="noopener noreferrer">{html.escape(ip)}</a>'
        )
        record.body[self.body_key] = channel_pair(text=ip, html=link)

    def _client_ip(self, ctx: HookContext) -> str | None:
        client = ctx.get("client") or {}
        ip = client.get("ip") if isinstance(client, dict) else None
        if ip:
            return str(ip)
        if self.resolver is None:
            return None
        return self.resolver.resolve(ctx.get("headers") or {}, ctx.get("remote_addr"))
