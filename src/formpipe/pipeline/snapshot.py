"""Read-only snapshot of a submission record for validators.

Hooks mutate the live SubmissionRecord; validators only ever see a frozen,
deep-copied view taken immediately before they run.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from formpipe.pipeline.record import FIELD_NAMES, SubmissionRecord, safe_copy


@dataclass(frozen=True)
class ReadOnlySnapshot:
    """Immutable view of a SubmissionRecord at one instant.

    Scalar fields are always strings (empty when missing). ``meta`` and
    ``body`` return fresh deep copies on every access, so nothing a validator
    does to them can leak back into the snapshot or the live record.
    """

    name: str = ""
    email: str = ""
    subject: str = ""
    message: str = ""
    phone: str = ""
    _meta: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), repr=False)
    _body: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), repr=False)

    @classmethod
    def from_record(cls, record: SubmissionRecord) -> ReadOnlySnapshot:
        """Freeze the current state of a live record.

        Args:
            record: Mutable record to snapshot

        Returns:
            Snapshot sharing no containers with ``record``; uncopyable
            leaves (locks, sockets) are kept by reference
        """
        meta = record.meta if isinstance(record.meta, Mapping) else {}
        body = record.body if isinstance(record.body, Mapping) else {}
        return cls(
            name=_text(record.name),
            email=_text(record.email),
            subject=_text(record.subject),
            message=_text(record.message),
            phone=_text(record.phone),
            _meta=MappingProxyType(safe_copy(dict(meta))),
            _body=MappingProxyType(safe_copy(dict(body))),
        )

    @property
    def meta(self) -> dict[str, Any]:
        """Deep copy of the metadata bag."""
        return safe_copy(dict(self._meta))

    @property
    def body(self) -> dict[str, Any]:
        """Deep copy of the body bag."""
        return safe_copy(dict(self._body))

    def field_value(self, name: str) -> str:
        """Read a field by name, falling back to ``meta`` for custom fields.

        Non-scalar meta values read as an empty string.
        """
        if name in FIELD_NAMES:
            return getattr(self, name)
        value = self._meta.get(name)
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float, bool)):
            return str(value)
        return ""


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ("" if value is None else str(value))
