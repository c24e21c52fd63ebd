"""Field validators: required, email and length checks.

Each factory returns a validator callable with a ``label`` attribute so it
registers under a stable name. Builtin fields are read from the snapshot;
any other field name is read from ``meta``.

Codes:
    <FIELD>_REQUIRED   required field empty after trimming
    EMAIL_INVALID      malformed address
    EMAIL_NO_MX        domain has neither MX nor A record (strict mode)
    <FIELD>_TOO_LONG   value exceeds its maximum length
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from typing import Any, Literal

import dns.exception
import dns.resolver

from formpipe.errors import ValidationError
from formpipe.messages import MessageResolver
from formpipe.pipeline.snapshot import ReadOnlySnapshot

logger = logging.getLogger(__name__)

EMAIL_INVALID = "EMAIL_INVALID"
EMAIL_NO_MX = "EMAIL_NO_MX"

DOMAIN_RECORD_TYPES = ("MX", "A")

DomainResolver = Callable[[str], bool]

FIELD_MESSAGES: dict[str, dict[str, Any]] = {
    "NAME_REQUIRED": {"message": "Name is required.", "http": 422},
    "EMAIL_REQUIRED": {"message": "Email is required.", "http": 422},
    "SUBJECT_REQUIRED": {"message": "Subject is required.", "http": 422},
    "MESSAGE_REQUIRED": {"message": "Message is required.", "http": 422},
    "PHONE_REQUIRED": {"message": "Phone is required.", "http": 422},
    EMAIL_INVALID: {"message": "Email address is invalid.", "http": 422},
    EMAIL_NO_MX: {"message": "Email domain has no MX record.", "http": 422},
    "SUBJECT_TOO_LONG": {"message": "Subject is too long.", "http": 422},
    "MESSAGE_TOO_LONG": {"message": "Message is too long.", "http": 422},
    "PHONE_TOO_LONG": {"message": "Phone is too long.", "http": 422},
}

_LOOSE_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_LOCAL_RE = re.compile(r"^[A-Za-z0-9._%+\-]+$")
_DOMAIN_RE = re.compile(r"^[A-Za-z0-9.-]+$")
_TLD_RE = re.compile(r"^[A-Za-z]{2,63}$")


def code_for(field: str, suffix: str) -> str:
    """Build a field-scoped code, e.g. ``code_for("email", "REQUIRED")``."""
    return f"{field.upper()}_{suffix}"


def required(fields: Iterable[str] = ("name", "email", "message"), *, label: str = "required") -> Any:
    """Require non-blank values for ``fields``, checked in order.

    Raises on the first missing field with ``<FIELD>_REQUIRED``.
    """
    names = tuple(fields)

    def check(snapshot: ReadOnlySnapshot) -> dict[str, Any]:
        for name in names:
            if not snapshot.field_value(name).strip():
                raise ValidationError(code_for(name, "REQUIRED"), name)
        return {"status": "OK", "fields": list(names)}

    check.label = label  # type: ignore[attr-defined]
    return check


def email(
    field: str = "email",
    mode: Literal["loose", "strict"] = "loose",
    *,
    domain_resolver: DomainResolver | None = None,
    label: str | None = None,
) -> Any:
    """Validate an email address.

    An empty value passes; pair with ``required`` to make it mandatory.

    Args:
        field: Field holding the address
        mode: ``loose`` checks basic syntax; ``strict`` enforces the
            conservative local/domain grammar and a DNS check
        domain_resolver: Returns True if a domain can receive mail;
            defaults to an MX-then-A DNS lookup
        label: Registration label, ``field`` when omitted
    """
    resolve_domain = domain_resolver or domain_resolves
    invalid = code_for(field, "INVALID")
    no_mx = code_for(field, "NO_MX")

    def check(snapshot: ReadOnlySnapshot) -> dict[str, Any] | None:
        value = snapshot.field_value(field).strip()
        if not value:
            return None
        if mode != "strict":
            if not _LOOSE_EMAIL_RE.match(value):
                raise ValidationError(invalid, field)
            return None

        ascii_domain = strict_email_domain(value)
        if ascii_domain is None:
            raise ValidationError(invalid, field)
        if not resolve_domain(ascii_domain):
            raise ValidationError(no_mx, field, meta={"domain": ascii_domain})
        return {"status": "OK", "domain": ascii_domain}

    check.label = label or field  # type: ignore[attr-defined]
    return check


def length(field: str, max_len: int, *, label: str | None = None) -> Any:
    """Cap a field's length in characters.

    Raises ``<FIELD>_TOO_LONG`` with ``{"max", "length"}`` diagnostics.
    """

    def check(snapshot: ReadOnlySnapshot) -> None:
        value = snapshot.field_value(field)
        if len(value) > max_len:
            raise ValidationError(
                code_for(field, "TOO_LONG"),
                field,
                meta={"max": max_len, "length": len(value)},
            )

    check.label = label or f"{field}_length"  # type: ignore[attr-defined]
    return check


def pattern(field: str, regex: str, *, label: str | None = None) -> Any:
    """Require a custom field to match ``regex``; empty values pass.

    Raises ``<FIELD>_INVALID``.
    """
    compiled = re.compile(regex)

    def check(snapshot: ReadOnlySnapshot) -> None:
        value = snapshot.field_value(field).strip()
        if value and not compiled.fullmatch(value):
            raise ValidationError(code_for(field, "INVALID"), field)

    check.label = label or f"{field}_pattern"  # type: ignore[attr-defined]
    return check


def strict_email_domain(address: str) -> str | None:
    """Validate an address against the strict grammar.

    Returns:
        The ASCII (IDNA) form of the domain, or None if the address is invalid
    """
    local, sep, domain = address.rpartition("@")
    if not sep or not local or not domain:
        return None

    if not _LOCAL_RE.match(local) or ".." in local or local.startswith(".") or local.endswith("."):
        return None

    try:
        ascii_domain = domain.encode("idna").decode("ascii")
    except UnicodeError:
        return None

    if not _DOMAIN_RE.match(ascii_domain) or ".." in ascii_domain:
        return None

    labels = ascii_domain.split(".")
    if len(labels) < 2:
        return None
    for part in labels:
        if not 1 <= len(part) <= 63 or part.startswith("-") or part.endswith("-"):
            return None
    if not _TLD_RE.match(labels[-1]):
        return None
    return ascii_domain


def domain_resolves(domain: str, *, query: Callable[[str, str], Any] | None = None) -> bool:
    """Check that a domain accepts mail: an MX record, else an A record.

    Args:
        domain: ASCII domain name
        query: ``(name, rdtype)`` lookup; defaults to ``dns.resolver.resolve``.
            It must raise ``dns.resolver.NXDOMAIN`` for unknown names and
            another ``dns.exception.DNSException`` when a type has no records.
    """
    lookup = query or dns.resolver.resolve
    for rdtype in DOMAIN_RECORD_TYPES:
        try:
            answer = lookup(domain, rdtype)
        except dns.resolver.NXDOMAIN as e:
            logger.debug(f"Domain lookup failed for {domain}: {e}")
            return False
        except dns.exception.DNSException as e:
            logger.debug(f"No {rdtype} record for {domain}: {type(e).__name__}")
            continue
        if answer:
            return True
    return False


def register_default_messages(resolver: MessageResolver) -> None:
    """Merge the field-validation messages into a resolver."""
    resolver.extend(FIELD_MESSAGES)
