"""Deterministic label derivation for validators and hooks registered without one.

Resolution order:
    1. A non-empty ``label`` attribute on the callable (validator factories set it)
    2. The ``__qualname__`` of the function, bound method or callable's class,
       unwrapping ``functools.partial``
    3. ``{kind}#{sequence}`` for anonymous callables (lambdas, closures),
       where ``sequence`` is the 1-based registration position

The result never depends on object identity, so the same configuration
always yields the same labels.
"""

from __future__ import annotations

import functools
from typing import Any


def derive_label(target: Any, *, kind: str, sequence: int) -> str:
    """Derive a stable label for an unlabeled validator or hook.

    Args:
        target: Validator callable or hook object
        kind: Type tag used for anonymous callables (e.g. "validator")
        sequence: 1-based registration position

    Returns:
        Label string
    """
    explicit = getattr(target, "label", None)
    if isinstance(explicit, str) and explicit:
        return explicit

    while isinstance(target, functools.partial):
        target = target.func

    qualname = getattr(target, "__qualname__", None)
    if not isinstance(qualname, str):
        qualname = type(target).__qualname__

    if "<" in qualname:
        return f"{kind}#{sequence}"
    return qualname
