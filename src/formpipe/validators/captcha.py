"""Arithmetic captcha backed by a session mapping.

``generate_challenge`` stores the expected answer under a session key and
returns the question to show. ``validate`` builds a validator comparing the
submitted answer (read from ``meta``, see RequestFieldHook) with it.
"""

from __future__ import annotations

import random
import re
from collections.abc import MutableMapping, Sequence
from typing import Any

from formpipe.errors import ValidationError
from formpipe.messages import MessageResolver
from formpipe.pipeline.snapshot import ReadOnlySnapshot

CAPTCHA_MISSING = "CAPTCHA_MISSING"
CAPTCHA_INVALID = "CAPTCHA_INVALID"

DEFAULT_SESSION_KEY = "formpipe_captcha"
DEFAULT_FIELD = "captcha"

CAPTCHA_MESSAGES: dict[str, dict[str, Any]] = {
    CAPTCHA_MISSING: {"message": "Captcha token is missing or expired.", "http": 422},
    CAPTCHA_INVALID: {"message": "Captcha answer is invalid.", "http": 422},
}

_SYMBOLS = {"+": "+", "-": "−", "*": "×"}
_INT_RE = re.compile(r"^[+-]?\d+$")


def generate_challenge(
    session: MutableMapping[str, Any],
    *,
    key: str = DEFAULT_SESSION_KEY,
    ops: Sequence[str] = ("+", "-", "*"),
    rng: random.Random | None = None,
) -> str:
    """Create a new challenge and store its answer in ``session``.

    Args:
        session: Per-visitor session storage
        key: Session key holding the expected answer
        ops: Operators to pick from
        rng: Random source (seedable for tests)

    Returns:
        Question text, e.g. ``"3 × 4 = ?"``
    """
    rng = rng or random.SystemRandom()
    a = rng.randint(1, 9)
    b = rng.randint(1, 9)
    op = rng.choice([o for o in ops if o in _SYMBOLS] or ["+"])
    if op == "+":
        answer = a + b
    elif op == "-":
        answer = a - b
    else:
        answer = a * b
    session[key] = answer
    return f"{a} {_SYMBOLS[op]} {b} = ?"


def normalize_answer(value: Any) -> int | None:
    """Parse a submitted answer; None when it is not an integer."""
    text = str(value).strip() if value is not None else ""
    if not _INT_RE.match(text):
        return None
    return int(text)


def validate(
    session: MutableMapping[str, Any],
    *,
    field: str = DEFAULT_FIELD,
    session_key: str = DEFAULT_SESSION_KEY,
    one_shot: bool = True,
    label: str = "captcha",
) -> Any:
    """Build a validator checking the captcha answer.

    Args:
        session: Session storage used by ``generate_challenge``
        field: Meta key holding the submitted answer
        session_key: Session key holding the expected answer
        one_shot: Discard the expected answer after the first check
        label: Registration label
    """

    def check(snapshot: ReadOnlySnapshot) -> dict[str, Any]:
        expected = normalize_answer(session.get(session_key))
        if one_shot:
            session.pop(session_key, None)
        if expected is None:
            raise ValidationError(CAPTCHA_MISSING, field)

        provided = snapshot.field_value(field)
        answer = normalize_answer(provided)
        if answer is None or answer != expected:
            raise ValidationError(CAPTCHA_INVALID, field, meta={"provided": provided})
        return {"status": "OK"}

    check.label = label  # type: ignore[attr-defined]
    return check


def register_default_messages(resolver: MessageResolver) -> None:
    """Merge the captcha messages into a resolver."""
    resolver.extend(CAPTCHA_MESSAGES)
