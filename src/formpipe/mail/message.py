"""Outbound message built from a submission record."""

from __future__ import annotations

import html
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from formpipe.mail.template import DefaultTemplate, MessageTemplate
from formpipe.pipeline.record import SubmissionRecord

DEFAULT_SUBJECT = "New contact message"

_TAG_RE = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class Attachment:
    """File attached to an outbound message.

    Attributes:
        filename: Name shown to the recipient
        content: Raw bytes, or a path to read them from when ``path`` is set
        mime_type: ``maintype/subtype``
    """

    filename: str
    content: bytes = b""
    mime_type: str = "application/octet-stream"
    path: str | None = None

    def read(self) -> bytes:
        if self.path:
            with open(self.path, "rb") as f:
                return f.read()
        return self.content

    @classmethod
    def coerce(cls, value: Any) -> Attachment | None:
        """Build an attachment from a path string or a descriptor mapping."""
        if isinstance(value, Attachment):
            return value
        if isinstance(value, str) and value:
            return cls(filename=value.replace("\\", "/").rsplit("/", 1)[-1], path=value)
        if isinstance(value, Mapping):
            path = value.get("path")
            content = value.get("content", b"")
            if isinstance(content, str):
                content = content.encode()
            filename = value.get("name") or value.get("filename") or (str(path).rsplit("/", 1)[-1] if path else "")
            if not filename:
                return None
            return cls(
                filename=str(filename),
                content=content,
                mime_type=str(value.get("mime_type") or value.get("type") or "application/octet-stream"),
                path=str(path) if path else None,
            )
        return None


@dataclass(frozen=True)
class OutboundMessage:
    """Transport-agnostic email message.

    Attributes:
        subject: Subject line
        html: HTML body
        text: Plain-text body
        to: Recipient address
        from_address: Sender address
        from_name: Sender display name
        reply_to: Reply-To address
        attachments: Files to attach
    """

    subject: str
    html: str
    text: str
    to: str
    from_address: str
    from_name: str = ""
    reply_to: str = ""
    attachments: tuple[Attachment, ...] = field(default=())

    @classmethod
    def from_record(
        cls,
        record: SubmissionRecord,
        *,
        to: str = "",
        from_address: str = "",
        from_name: str = "",
        template: MessageTemplate | None = None,
        meta: Mapping[str, Any] | None = None,
    ) -> OutboundMessage:
        """Build a message from a record.

        Addressing falls back as follows: ``to`` uses ``meta["deliver_to"]``
        when unset; ``from_address`` uses the submitter's email; ``reply_to``
        is the submitter's email or the sender. Templates render the sanitized
        projection, never the live record.

        Args:
            record: Live submission record
            to: Configured recipient
            from_address: Configured sender
            from_name: Configured sender display name
            template: Renderer; DefaultTemplate when None
            meta: Pipeline meta (read for ``deliver_to`` and ``attachments``)

        Returns:
            OutboundMessage instance
        """
        meta = meta or {}
        template = template or DefaultTemplate()
        projection = record.projection()

        html_body = template.render_html(projection)
        text_body = template.render_text(projection) or strip_tags(html_body)

        recipient = to or _text(meta.get("deliver_to"))
        sender = from_address or projection.email
        reply_to = projection.email or sender

        attachments = tuple(
            a for a in (Attachment.coerce(v) for v in _as_list(meta.get("attachments"))) if a is not None
        )

        return cls(
            subject=projection.subject or DEFAULT_SUBJECT,
            html=html_body,
            text=text_body,
            to=recipient,
            from_address=sender,
            from_name=from_name,
            reply_to=reply_to,
            attachments=attachments,
        )


def strip_tags(markup: str) -> str:
    """Reduce HTML to readable plain text."""
    return html.unescape(_TAG_RE.sub("", markup)).strip()


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_list(value: Any) -> Sequence[Any]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return value
    return (value,)
