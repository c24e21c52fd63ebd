"""Result envelope returned by the pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from formpipe.codes import OK_SENT
from formpipe.pipeline.record import safe_copy


@dataclass(frozen=True)
class PipelineResult:
    """Terminal ``{ok, code, message, meta}`` envelope.

    Attributes:
        ok: True iff ``code`` is the success code
        code: Stable symbolic code, e.g. ``OK_SENT`` or ``EMAIL_INVALID``
        message: Human message resolved from the code
        meta: Aggregated diagnostics, including ``meta["validators"]``
    """

    ok: bool
    code: str
    message: str
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "code": self.code,
            "message": self.message,
            "meta": safe_copy(self.meta),
        }


def build_result(code: str, message: str, meta: Mapping[str, Any] | None = None) -> PipelineResult:
    """Build an envelope; ``ok`` follows from the code."""
    return PipelineResult(
        ok=code == OK_SENT,
        code=code,
        message=message,
        meta=safe_copy(dict(meta or {})),
    )
