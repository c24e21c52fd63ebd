"""Submission record carried through the pipeline.

Provides the mutable record hooks work on, plus helpers for the two-channel
``{text, html}`` values allowed in ``body``.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

FIELD_NAMES = ("name", "email", "subject", "message", "phone")

CHANNELS = ("text", "html")

logger = logging.getLogger(__name__)


def channel_pair(text: str = "", html: str = "") -> dict[str, str]:
    """Build a two-channel body value rendered differently per output format."""
    return {"text": text, "html": html}


def is_channel_pair(value: Any) -> bool:
    """Check if a body value is a well-formed two-channel pair.

    At least one of ``text``/``html`` must be present and every present
    channel must be a string.
    """
    if not isinstance(value, Mapping):
        return False
    present = [key for key in CHANNELS if key in value]
    if not present:
        return False
    return all(isinstance(value[key], str) for key in present)


def is_renderable(value: Any) -> bool:
    """Check if a body value is a scalar or a two-channel pair."""
    if isinstance(value, (str, int, float, bool)):
        return True
    return is_channel_pair(value)


def safe_copy(value: Any) -> Any:
    """Deep-copy a value, keeping uncopyable leaves by reference.

    ``meta`` may hold arbitrary objects (locks, sockets, generators). Mappings,
    lists and tuples are still copied container by container; only the leaves
    that refuse to be copied are shared.
    """
    try:
        return copy.deepcopy(value)
    except Exception as e:
        if isinstance(value, Mapping):
            return {key: safe_copy(item) for key, item in value.items()}
        if isinstance(value, list):
            return [safe_copy(item) for item in value]
        if isinstance(value, tuple):
            return tuple(safe_copy(item) for item in value)
        logger.debug(f"Keeping uncopyable {type(value).__name__} by reference: {e}")
        return value


@dataclass
class SubmissionRecord:
    """Mutable submission owned by the pipeline for one ``process()`` call.

    Attributes:
        name: Submitter's display name
        email: Submitter's address (raw, unvalidated)
        message: Main message text
        subject: Message subject
        phone: Phone number (raw, unnormalized)
        body: User-visible extras that may be rendered into the message.
            Values are scalars or two-channel ``{text, html}`` pairs.
        meta: Internal/diagnostic data. Never rendered.
    """

    name: str = ""
    email: str = ""
    message: str = ""
    subject: str = ""
    phone: str = ""
    body: dict[str, Any] = field(default_factory=dict)
    meta: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_form(
        cls,
        data: Mapping[str, Any],
        *,
        body_fields: list[str] | None = None,
    ) -> SubmissionRecord:
        """Create a record from a parsed form payload.

        Args:
            data: Form fields, e.g. parsed POST data
            body_fields: Extra form keys copied into ``body`` as scalars

        Returns:
            SubmissionRecord with top-level fields coerced to strings
        """
        values = {name: _as_text(data.get(name)) for name in FIELD_NAMES}
        body: dict[str, Any] = {}
        for key in body_fields or []:
            value = data.get(key)
            if value is not None and is_renderable(value):
                body[key] = value
        return cls(**values, body=body)

    def fields(self) -> dict[str, str]:
        """Get top-level scalar fields as a dict."""
        return {name: getattr(self, name) for name in FIELD_NAMES}

    def projection(self) -> SubmissionRecord:
        """Build the sanitized copy exposed to rendering.

        Top-level fields and ``body`` are preserved, ``meta`` is cleared.

        Returns:
            New SubmissionRecord that shares no state with this one
        """
        body = self.body if isinstance(self.body, dict) else {}
        return SubmissionRecord(
            **{name: _as_text(value) for name, value in self.fields().items()},
            body=safe_copy(body),
            meta={},
        )

    def renderable_body(self) -> Iterator[tuple[str, Any]]:
        """Iterate ``body`` entries that renderers may use, skipping malformed ones."""
        if not isinstance(self.body, Mapping):
            return
        for key, value in self.body.items():
            if is_renderable(value):
                yield str(key), value


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return ""
