"""Stable symbolic result codes produced by the pipeline.

Transport-specific codes (e.g. ``ERR_SMTP_AUTH``) live with the transport
that raises them, see ``formpipe.mail.smtp``.
"""

# Success
OK_SENT = "OK_SENT"

# Generic errors (transport-agnostic)
ERR_VALIDATION = "ERR_VALIDATION"
ERR_NO_SENDER = "ERR_NO_SENDER"
ERR_SEND_FAILED = "ERR_SEND_FAILED"
ERR_UNEXPECTED = "ERR_UNEXPECTED"

CORE_CODES = (OK_SENT, ERR_VALIDATION, ERR_NO_SENDER, ERR_SEND_FAILED, ERR_UNEXPECTED)
