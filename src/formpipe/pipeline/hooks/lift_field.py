"""Lift a raw request-body field into record meta."""

from __future__ import annotations

import logging

from formpipe.pipeline.hook import Hook, HookContext

logger = logging.getLogger(__name__)


class RequestFieldHook(Hook):
    """Copy ``request_body[field]`` into ``record.meta[meta_key]``.

    Used to expose fields that are not part of the record (e.g. a captcha
    answer) to validators, which read custom fields from meta.
    """

    def __init__(self, field: str, meta_key: str | None = None, *, strip: bool = True) -> None:
        self.field = field
        self.meta_key = meta_key or field
        self.strip = strip
        self.label = f"lift:{self.field}"

    def on_before_validate(self, ctx: HookContext) -> None:
        value = ctx.request_body().get(self.field)
        if value is None:
            return
        if isinstance(value, str) and self.strip:
            value = value.strip()
        ctx.record.meta[self.meta_key] = value
        logger.debug(f"Lifted request field '{self.field}' into meta['{self.meta_key}']")
