"""Whitespace normalization for top-level record fields."""

from __future__ import annotations

import re

from formpipe.pipeline.hook import Hook, HookContext

_RUN_RE = re.compile(r"[ \t]+")


class NormalizeWhitespaceHook(Hook):
    """Trim single-line fields and collapse internal runs of blanks.

    ``message`` keeps its line breaks; only surrounding whitespace is
    trimmed and Windows line endings are unified.
    """

    label = "normalize_whitespace"

    def __init__(self, fields: list[str] | None = None) -> None:
        self.fields = fields or ["name", "email", "subject", "phone"]

    def on_before_validate(self, ctx: HookContext) -> None:
        record = ctx.record
        for name in self.fields:
            value = getattr(record, name, None)
            if isinstance(value, str):
                setattr(record, name, _RUN_RE.sub(" ", value).strip())
        if isinstance(record.message, str):
            record.message = record.message.replace("\r\n", "\n").strip()
