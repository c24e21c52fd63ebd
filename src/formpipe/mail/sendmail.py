"""Sender piping messages into a sendmail-compatible binary."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Callable
from typing import Any

from formpipe.config import SendmailConfig
from formpipe.errors import TransportError
from formpipe.mail.message import OutboundMessage
from formpipe.mail.sender import build_mime

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess[bytes]]


class SendmailSender:
    """Writes the MIME message to the stdin of ``config.command``."""

    def __init__(self, config: SendmailConfig, runner: Runner | None = None) -> None:
        self.config = config
        self._run = runner or subprocess.run

    def send(self, message: OutboundMessage) -> str:
        """Deliver a message.

        Returns:
            The Message-ID header of the delivered message

        Raises:
            TransportError: If the command cannot be run or exits non-zero
        """
        mime = build_mime(message, default_from_name=self.config.from_name)
        context: dict[str, Any] = {"command": " ".join(self.config.command)}

        try:
            result = self._run(
                self.config.command,
                input=mime.as_bytes(),
                capture_output=True,
                timeout=self.config.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise TransportError(f"sendmail failed: {e}", context=context) from e

        if result.returncode != 0:
            stderr = (result.stderr or b"").decode(errors="replace").strip()
            raise TransportError(
                f"sendmail exited with {result.returncode}: {stderr}",
                context={**context, "returncode": result.returncode},
            )

        message_id = str(mime["Message-ID"])
        logger.info(f"sendmail message {message_id} queued for {message.to}")
        return message_id
