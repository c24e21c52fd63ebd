"""Outbound message building and transports."""

from formpipe.mail.message import Attachment, OutboundMessage, strip_tags
from formpipe.mail.sender import Sender, build_mime
from formpipe.mail.sendmail import SendmailSender
from formpipe.mail.smtp import SmtpSender, SmtpTransportError
from formpipe.mail.template import DefaultTemplate, MessageTemplate

__all__ = [
    "Attachment",
    "DefaultTemplate",
    "MessageTemplate",
    "OutboundMessage",
    "Sender",
    "SendmailSender",
    "SmtpSender",
    "SmtpTransportError",
    "build_mime",
    "strip_tags",
]
