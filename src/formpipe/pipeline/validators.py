"""Validator registry and validation outcomes.

A validator is a callable taking a ReadOnlySnapshot. It either returns
(optionally with a diagnostic mapping) or raises ValidationError. Objects
exposing a callable ``check`` method are accepted as well.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from formpipe.errors import INVALID_VALIDATOR, ConfigurationError, ValidationError
from formpipe.pipeline.labels import derive_label
from formpipe.pipeline.snapshot import ReadOnlySnapshot

ValidatorFn = Callable[[ReadOnlySnapshot], Mapping[str, Any] | None]

STATUS_OK = "OK"
STATUS_FAIL = "FAIL"


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of running one validator once.

    Attributes:
        ok: Whether the validator passed
        diagnostic: Mapping returned by the validator, or failure details
        error_code: Failure code (failed outcomes only)
        field: Field the failure relates to, if any
    """

    ok: bool
    diagnostic: dict[str, Any] = field(default_factory=dict)
    error_code: str | None = None
    field: str | None = None

    @classmethod
    def passed(cls, returned: Any = None) -> ValidationOutcome:
        diagnostic = dict(returned) if isinstance(returned, Mapping) else {}
        return cls(ok=True, diagnostic=diagnostic)

    @classmethod
    def failed(cls, error: ValidationError) -> ValidationOutcome:
        return cls(ok=False, diagnostic=dict(error.meta), error_code=error.error_code, field=error.field)

    def to_meta(self) -> dict[str, Any]:
        """Render the outcome as the record stored under ``meta["validators"][label]``."""
        if self.ok:
            return dict(self.diagnostic) if self.diagnostic else {"status": STATUS_OK}
        record: dict[str, Any] = {
            "status": STATUS_FAIL,
            "error_code": self.error_code,
            "field": self.field,
        }
        if self.diagnostic:
            record["meta"] = dict(self.diagnostic)
        return record


def _as_callable(validator: Any) -> ValidatorFn:
    if callable(validator):
        return validator
    check = getattr(validator, "check", None)
    if callable(check):
        return check
    raise ConfigurationError(
        f"Validator must be callable, got {type(validator).__name__}",
        code=INVALID_VALIDATOR,
    )


class ValidatorRegistry:
    """Ordered mapping of label -> validator callable.

    Registration order is execution order. Re-registering a label replaces
    the validator in place.
    """

    def __init__(self, validators: Mapping[str, Any] | Iterable[Any] | None = None) -> None:
        self._validators: dict[str, ValidatorFn] = {}
        if validators:
            self.set_validators(validators)

    def set_validators(self, validators: Mapping[str, Any] | Iterable[Any]) -> None:
        """Replace the full validator set.

        Accepted forms:
            - {"label": validator, ...}
            - [validator, ("label", validator), ...] (labels derived when absent)

        Raises:
            ConfigurationError: If any entry is not callable; the previous
                set is kept in that case
        """
        staged = ValidatorRegistry()
        if isinstance(validators, Mapping):
            for label, validator in validators.items():
                staged.add(validator, str(label))
        else:
            for entry in validators:
                if isinstance(entry, tuple) and len(entry) == 2 and isinstance(entry[0], str):
                    staged.add(entry[1], entry[0])
                else:
                    staged.add(entry)
        self._validators = staged._validators

    def add(self, validator: Any, label: str | None = None) -> str:
        """Register one validator.

        Args:
            validator: Callable (or object with ``check``) taking a snapshot
            label: Explicit label; derived deterministically when omitted

        Returns:
            The label the validator was registered under

        Raises:
            ConfigurationError: If the validator is not callable
        """
        fn = _as_callable(validator)
        if not label:
            sequence = len(self._validators) + 1
            label = derive_label(validator, kind="validator", sequence=sequence)
            if label in self._validators:
                label = f"{label}#{sequence}"
        self._validators[label] = fn
        return label

    @property
    def labels(self) -> list[str]:
        return list(self._validators)

    def get(self, label: str) -> ValidatorFn | None:
        return self._validators.get(label)

    def __iter__(self) -> Iterator[tuple[str, ValidatorFn]]:
        return iter(list(self._validators.items()))

    def __len__(self) -> int:
        return len(self._validators)

    def __contains__(self, label: object) -> bool:
        return label in self._validators
