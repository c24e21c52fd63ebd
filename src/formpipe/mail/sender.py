"""Sender interface and shared MIME assembly."""

from __future__ import annotations

from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Protocol, runtime_checkable

from formpipe.mail.message import OutboundMessage


@runtime_checkable
class Sender(Protocol):
    """Delivers an outbound message.

    ``send`` returns a transport message id (may be empty) or raises. A
    TransportError carrying ``error_code`` is reported with that code;
    anything else is reported as a generic send failure.
    """

    def send(self, message: OutboundMessage) -> str: ...


def build_mime(message: OutboundMessage, *, default_from_name: str = "") -> EmailMessage:
    """Assemble a multipart/alternative MIME message with attachments.

    Returns:
        EmailMessage with a fresh Message-ID header
    """
    mime = EmailMessage()
    mime["Subject"] = message.subject
    mime["From"] = formataddr((message.from_name or default_from_name, message.from_address))
    mime["To"] = message.to
    if message.reply_to:
        mime["Reply-To"] = message.reply_to
    domain = message.from_address.rpartition("@")[2] or None
    mime["Message-ID"] = make_msgid(domain=domain)

    mime.set_content(message.text)
    if message.html:
        mime.add_alternative(message.html, subtype="html")

    for attachment in message.attachments:
        maintype, _, subtype = attachment.mime_type.partition("/")
        mime.add_attachment(
            attachment.read(),
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return mime
