"""SMTP sender built on smtplib.

Failures are mapped to stable codes so callers can tell a bad password from
an unreachable host:

    ERR_SMTP_CONNECT  connection refused, timed out or dropped
    ERR_SMTP_AUTH     login rejected
    ERR_SMTP_FROM     sender address rejected
    ERR_SMTP_RCPT     recipient rejected
    ERR_SMTP_DATA     message data rejected
    ERR_SMTP_TLS      STARTTLS/implicit TLS failed
    ERR_SMTP_UNKNOWN  anything else smtplib raises
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from collections.abc import Callable
from typing import Any

from formpipe.config import SmtpConfig
from formpipe.errors import TransportError
from formpipe.mail.message import OutboundMessage
from formpipe.mail.sender import build_mime
from formpipe.messages import MessageResolver

logger = logging.getLogger(__name__)

ERR_SMTP_CONNECT = "ERR_SMTP_CONNECT"
ERR_SMTP_AUTH = "ERR_SMTP_AUTH"
ERR_SMTP_FROM = "ERR_SMTP_FROM"
ERR_SMTP_RCPT = "ERR_SMTP_RCPT"
ERR_SMTP_DATA = "ERR_SMTP_DATA"
ERR_SMTP_TLS = "ERR_SMTP_TLS"
ERR_SMTP_UNKNOWN = "ERR_SMTP_UNKNOWN"

SMTP_MESSAGES: dict[str, dict[str, Any]] = {
    ERR_SMTP_CONNECT: {"message": "Could not connect to the SMTP server.", "http": 502},
    ERR_SMTP_AUTH: {"message": "SMTP authentication failed.", "http": 502},
    ERR_SMTP_FROM: {"message": "Invalid sender address.", "http": 502},
    ERR_SMTP_RCPT: {"message": "Recipient address was rejected.", "http": 502},
    ERR_SMTP_DATA: {"message": "SMTP server rejected the message data.", "http": 502},
    ERR_SMTP_TLS: {"message": "Could not start TLS connection.", "http": 502},
    ERR_SMTP_UNKNOWN: {"message": "Unknown SMTP error.", "http": 502},
}

# Checked in order; subclasses before their bases (SMTPException and
# SSLError both derive from OSError).
_ERROR_CODES: tuple[tuple[type[BaseException], str], ...] = (
    (smtplib.SMTPAuthenticationError, ERR_SMTP_AUTH),
    (smtplib.SMTPSenderRefused, ERR_SMTP_FROM),
    (smtplib.SMTPRecipientsRefused, ERR_SMTP_RCPT),
    (smtplib.SMTPDataError, ERR_SMTP_DATA),
    (ssl.SSLError, ERR_SMTP_TLS),
    (smtplib.SMTPConnectError, ERR_SMTP_CONNECT),
    (smtplib.SMTPServerDisconnected, ERR_SMTP_CONNECT),
    (smtplib.SMTPException, ERR_SMTP_UNKNOWN),
    (OSError, ERR_SMTP_CONNECT),
)

ConnectionFactory = Callable[[SmtpConfig], smtplib.SMTP]


class SmtpTransportError(TransportError):
    """SMTP failure carrying one of the ``ERR_SMTP_*`` codes."""


def classify_error(error: BaseException) -> str:
    """Map an smtplib/socket exception to an ``ERR_SMTP_*`` code."""
    for error_type, code in _ERROR_CODES:
        if isinstance(error, error_type):
            return code
    return ERR_SMTP_UNKNOWN


def default_connection_factory(config: SmtpConfig) -> smtplib.SMTP:
    """Open an SMTP connection, using implicit TLS when ``secure == "ssl"``."""
    if config.secure == "ssl":
        return smtplib.SMTP_SSL(
            config.host,
            config.port,
            timeout=config.timeout,
            context=ssl.create_default_context(),
        )
    return smtplib.SMTP(config.host, config.port, timeout=config.timeout)


class SmtpSender:
    """Sends OutboundMessages over SMTP.

    Attributes:
        config: SMTP settings
    """

    def __init__(self, config: SmtpConfig, connection_factory: ConnectionFactory | None = None) -> None:
        self.config = config
        self._connect = connection_factory or default_connection_factory

    def send(self, message: OutboundMessage) -> str:
        """Deliver a message.

        Args:
            message: Message to deliver

        Returns:
            The Message-ID header of the delivered message

        Raises:
            SmtpTransportError: With an ``ERR_SMTP_*`` code on any failure
        """
        mime = build_mime(message, default_from_name=self.config.from_name)
        context = {"host": self.config.host, "port": self.config.port}

        try:
            smtp = self._connect(self.config)
        except Exception as e:
            raise self._wrap(e, ERR_SMTP_CONNECT, context) from e

        try:
            if self.config.secure == "tls":
                try:
                    smtp.starttls(context=ssl.create_default_context())
                except (smtplib.SMTPException, ssl.SSLError) as e:
                    raise self._wrap(e, ERR_SMTP_TLS, context) from e
            if self.config.username:
                smtp.login(self.config.username, self.config.password)
            smtp.send_message(mime, from_addr=message.from_address, to_addrs=[message.to])
        except SmtpTransportError:
            raise
        except Exception as e:
            raise self._wrap(e, classify_error(e), context) from e
        finally:
            _quit_quietly(smtp)

        message_id = str(mime["Message-ID"])
        logger.info(f"SMTP message {message_id} sent to {message.to} via {self.config.host}:{self.config.port}")
        return message_id

    def _wrap(self, error: BaseException, code: str, context: dict[str, Any]) -> SmtpTransportError:
        logger.warning(f"SMTP send failed ({code}): {type(error).__name__}: {error}")
        return SmtpTransportError(str(error) or code, error_code=code, context=context)

    @classmethod
    def register_default_messages(cls, resolver: MessageResolver) -> None:
        """Merge the ``ERR_SMTP_*`` messages into a resolver."""
        resolver.extend(SMTP_MESSAGES)


def _quit_quietly(smtp: Any) -> None:
    try:
        smtp.quit()
    except (smtplib.SMTPException, OSError) as e:
        logger.debug(f"SMTP quit failed: {e}")
