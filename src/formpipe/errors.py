"""Exception hierarchy for formpipe.

All errors inherit from FormPipeError so callers can catch broadly or
narrowly. Configuration errors are fatal at setup time; validation and
transport errors are recovered by the pipeline and mapped to result codes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

INVALID_VALIDATOR = "invalid-validator"
INVALID_HOOK = "invalid-hook"
INVALID_CONFIG = "invalid-config"


class FormPipeError(Exception):
    """Base exception for all formpipe errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.details = dict(details or {})
        super().__init__(message)


class ConfigurationError(FormPipeError):
    """Pipeline was configured with something it cannot use.

    Raised while registering validators or hooks, never during ``process()``.
    """


class ValidationError(FormPipeError):
    """Field-scoped validation failure raised by validators.

    Attributes:
        error_code: Machine-readable code, e.g. ``EMAIL_INVALID``
        field: Related field name, e.g. ``email``
        meta: Extra diagnostic details (internal, never rendered)
    """

    def __init__(
        self,
        error_code: str,
        field: str | None = None,
        message: str = "",
        meta: Mapping[str, Any] | None = None,
    ) -> None:
        self.error_code = error_code
        self.field = field
        self.meta = dict(meta or {})
        super().__init__(message or error_code, code=error_code, details=self.meta)


class TransportError(FormPipeError):
    """Outbound transport failure.

    A transport may attach its own stable ``error_code`` (e.g. ``ERR_SMTP_AUTH``)
    and a ``context`` used when resolving the human message. Without a code the
    pipeline reports a generic send failure.
    """

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.error_code = error_code
        self.context = dict(context or {})
        super().__init__(message, code=error_code, details=self.context)
