"""Built-in validators."""

from formpipe.messages import MessageResolver
from formpipe.validators import captcha, fields
from formpipe.validators.fields import email, length, pattern, required


def register_default_messages(resolver: MessageResolver) -> None:
    """Merge every built-in validator message into a resolver."""
    fields.register_default_messages(resolver)
    captcha.register_default_messages(resolver)


__all__ = ["captcha", "email", "fields", "length", "pattern", "register_default_messages", "required"]
