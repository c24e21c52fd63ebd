"""Code -> human message resolution.

Descriptor format:
    {"message": str, "http": int | None}

Accepted input aliases (normalized by ``extend``):
    - plain string                           -> {"message": <string>}
    - "message" | "msg" | "errstr" | "title" -> "message"
    - "http" | "status"                      -> "http"
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel

from formpipe import codes

logger = logging.getLogger(__name__)

_MESSAGE_KEYS = ("message", "msg", "errstr", "title")
_HTTP_KEYS = ("http", "status")

DEFAULT_MESSAGES: dict[str, dict[str, Any]] = {
    codes.OK_SENT: {"message": "Thanks! Your message has been sent.", "http": 200},
    codes.ERR_VALIDATION: {"message": "Validation failed.", "http": 422},
    codes.ERR_NO_SENDER: {"message": "Email sender is not configured.", "http": 500},
    codes.ERR_SEND_FAILED: {"message": "Message could not be sent.", "http": 502},
    codes.ERR_UNEXPECTED: {"message": "Unexpected error.", "http": 500},
}


class MessageDescriptor(BaseModel):
    """Human message for a code plus an optional HTTP status hint."""

    message: str
    http: int | None = None


class _KeepMissing(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class MessageResolver:
    """Resolves symbolic codes into human-friendly messages.

    Unknown codes resolve to the code itself.
    """

    def __init__(self, mapping: Mapping[str, Any] | None = None) -> None:
        self._map: dict[str, MessageDescriptor] = {}
        self.extend(DEFAULT_MESSAGES)
        if mapping:
            self.extend(mapping)

    def resolve(self, code: str, context: Mapping[str, Any] | None = None) -> str:
        """Resolve a code to its message.

        Args:
            code: Symbolic code
            context: Values for ``{name}`` placeholders in the message

        Returns:
            Message text; the raw template when placeholders cannot be filled
        """
        template = self.describe(code).message
        if not context:
            return template
        try:
            return template.format_map(_KeepMissing(context))
        except (ValueError, IndexError, AttributeError) as e:
            logger.debug(f"Could not format message for {code}: {e}")
            return template

    def describe(self, code: str) -> MessageDescriptor:
        """Describe a code (message + optional HTTP status hint)."""
        return self._map.get(code) or MessageDescriptor(message=code)

    def http_status(self, code: str, default: int | None = None) -> int | None:
        status = self.describe(code).http
        return status if status is not None else default

    def extend(self, mapping: Mapping[str, Any]) -> None:
        """Merge descriptors into the resolver, normalizing flexible input."""
        for code, value in mapping.items():
            self._map[str(code)] = _normalize_descriptor(str(code), value)

    def codes(self) -> list[str]:
        return list(self._map)

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> MessageResolver:
        """Load a resolver from a YAML mapping of code -> descriptor."""
        resolver = cls()
        with yaml_path.open() as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data, Mapping):
            resolver.extend(data.get("messages", data))
        else:
            logger.warning(f"Invalid messages file format: {type(data)}")
        return resolver


def _normalize_descriptor(code: str, value: Any) -> MessageDescriptor:
    if isinstance(value, str):
        return MessageDescriptor(message=value or code)
    if isinstance(value, MessageDescriptor):
        return value
    if not isinstance(value, Mapping):
        return MessageDescriptor(message=code)

    message = next((value[k] for k in _MESSAGE_KEYS if value.get(k)), "")
    if not isinstance(message, str) or not message:
        message = code

    http = next((value[k] for k in _HTTP_KEYS if k in value), None)
    return MessageDescriptor(message=message, http=http if isinstance(http, int) else None)
