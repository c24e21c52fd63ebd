"""Message templates rendering a sanitized record into HTML and plain text."""

from __future__ import annotations

import html
from collections.abc import Iterator
from typing import Any, Protocol

from formpipe.pipeline.record import SubmissionRecord, is_channel_pair

HEADING = "CONTACT MESSAGE"


class MessageTemplate(Protocol):
    """Renders the sanitized projection of a record.

    Implementations only ever receive ``SubmissionRecord.projection()``, so
    ``meta`` is always empty.
    """

    def render_html(self, record: SubmissionRecord) -> str: ...

    def render_text(self, record: SubmissionRecord) -> str | None:
        """Plain-text body; None or empty means derive it from the HTML."""
        ...


class DefaultTemplate:
    """Plain contact-message layout.

    Body entries render after the contact details: two-channel pairs use the
    channel matching the output format, scalars render as ``key: value``.
    """

    def render_html(self, record: SubmissionRecord) -> str:
        parts = [
            f'<h2 style="font-weight:bold;">{HEADING}</h2>',
            f"<p><strong>Name:</strong> {_esc(record.name)}</p>",
            f"<p><strong>Email:</strong> {_esc(record.email)}</p>",
        ]
        if record.phone:
            parts.append(f"<p><strong>Phone:</strong> {_esc(record.phone)}</p>")

        for key, value in _non_empty(record):
            if is_channel_pair(value):
                if value.get("html"):
                    parts.append(f"<p><strong>{_esc(key)}:</strong> {value['html']}</p>")
                else:
                    parts.append(f"<p><strong>{_esc(key)}:</strong></p>")
                    parts.append(
                        '<pre style="white-space:pre-wrap; margin:6px 0 10px 0;">'
                        f"{_esc(value.get('text', ''))}</pre>"
                    )
            else:
                parts.append(f"<p><strong>{_esc(key)}:</strong> {_esc(_scalar(value))}</p>")

        parts.append('<h3 style="font-weight:bold;">Message</h3>')
        parts.append(f'<pre style="white-space:pre-wrap;">{_esc(record.message)}</pre>')
        return "\n".join(parts)

    def render_text(self, record: SubmissionRecord) -> str:
        text = f"{HEADING}\n\nName: {record.name}\nEmail: {record.email}\n"
        if record.phone:
            text += f"Phone: {record.phone}\n"

        for key, value in _non_empty(record):
            if is_channel_pair(value):
                if value.get("text"):
                    text += f"{key}:\n{value['text']}\n"
                else:
                    text += f"{key}: [see HTML part]\n"
            else:
                text += f"{key}: {_scalar(value)}\n"

        text += f"\nMessage:\n{record.message}\n"
        return text


def _non_empty(record: SubmissionRecord) -> Iterator[tuple[str, Any]]:
    for key, value in record.renderable_body():
        if is_channel_pair(value):
            if value.get("text") or value.get("html"):
                yield key, value
        elif _scalar(value) != "":
            yield key, value


def _esc(value: Any) -> str:
    return html.escape(str(value), quote=True)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
