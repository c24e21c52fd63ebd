"""Hook interface, scope descriptors and hook context.

Hooks enrich or observe a submission. They receive read-write access to the
live record and run at four lifecycle points:

    on_before_validate(ctx)                  before validators (global or per label)
    on_after_validate(ctx, validators_meta)  after validators (global or per label)
    on_after_send(ctx, message_id)           after a successful send
    on_send_failure(ctx, error)              after a failed send

Hook failures never abort the pipeline (see HookDispatcher).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from formpipe.errors import INVALID_HOOK, ConfigurationError
from formpipe.pipeline.record import SubmissionRecord

# Type aliases
ValidatorsMeta = dict[str, list[dict[str, Any]]]
ScopeArg = str | Iterable[str] | None


class HookContext:
    """Read-write facade over the live record plus read-only request context.

    Example:
        def on_before_validate(self, ctx: HookContext) -> None:
            ctx.record.name = ctx.record.name.strip()
            ctx.record.meta["normalized"] = True
    """

    def __init__(self, record: SubmissionRecord, context: Mapping[str, Any] | None = None) -> None:
        self._record = record
        self._context = dict(context or {})

    @property
    def record(self) -> SubmissionRecord:
        """The live, mutable submission record."""
        return self._record

    def request_body(self) -> dict[str, Any]:
        """Get the raw parsed request body registered with the pipeline."""
        body = self._context.get("body", {})
        return dict(body) if isinstance(body, Mapping) else {}

    def get(self, key: str, default: Any = None) -> Any:
        """Get a request context value."""
        return self._context.get(key, default)


class Hook:
    """Base hook with no-op lifecycle methods.

    Subclasses override only the phases they care about.
    """

    def on_before_validate(self, ctx: HookContext) -> None:
        """Invoked before validators run. May mutate the record."""

    def on_after_validate(self, ctx: HookContext, validators_meta: ValidatorsMeta) -> None:
        """Invoked after validators with the per-label outcome records.

        Label-scoped hooks receive only their label's entry; global hooks
        receive every label once all validators have passed.
        """

    def on_after_send(self, ctx: HookContext, message_id: str = "") -> None:
        """Invoked after a successful send."""

    def on_send_failure(self, ctx: HookContext, error: BaseException) -> None:
        """Invoked when the send attempt fails."""


class FunctionHook(Hook):
    """Hook assembled from plain callables, one per lifecycle phase."""

    def __init__(
        self,
        *,
        before: Callable[[HookContext], Any] | None = None,
        after: Callable[[HookContext, ValidatorsMeta], Any] | None = None,
        after_send: Callable[[HookContext, str], Any] | None = None,
        on_failure: Callable[[HookContext, BaseException], Any] | None = None,
        label: str | None = None,
    ) -> None:
        self._before = before
        self._after = after
        self._after_send = after_send
        self._on_failure = on_failure
        if label:
            self.label = label

    def on_before_validate(self, ctx: HookContext) -> None:
        if self._before is not None:
            self._before(ctx)

    def on_after_validate(self, ctx: HookContext, validators_meta: ValidatorsMeta) -> None:
        if self._after is not None:
            self._after(ctx, validators_meta)

    def on_after_send(self, ctx: HookContext, message_id: str = "") -> None:
        if self._after_send is not None:
            self._after_send(ctx, message_id)

    def on_send_failure(self, ctx: HookContext, error: BaseException) -> None:
        if self._on_failure is not None:
            self._on_failure(ctx, error)


@dataclass(frozen=True)
class HookSpec:
    """A hook plus the validator labels it is scoped to.

    An empty ``before``/``after`` tuple means global for that phase.

    Attributes:
        hook: Hook implementation
        before: Labels whose validators this hook runs before
        after: Labels whose validators this hook runs after
    """

    hook: Hook
    before: tuple[str, ...] = field(default=())
    after: tuple[str, ...] = field(default=())

    @property
    def before_is_global(self) -> bool:
        return not self.before

    @property
    def after_is_global(self) -> bool:
        return not self.after


def create_hook_spec(
    hook: Hook,
    *,
    before: ScopeArg = None,
    after: ScopeArg = None,
) -> HookSpec:
    """Create a HookSpec with normalized scopes.

    Args:
        hook: Hook implementation
        before: Label, list of labels, or None/empty for global
        after: Label, list of labels, or None/empty for global

    Returns:
        HookSpec instance

    Raises:
        ConfigurationError: If ``hook`` is not a Hook
    """
    if not isinstance(hook, Hook):
        raise ConfigurationError(
            f"Hook must be a Hook instance, got {type(hook).__name__}",
            code=INVALID_HOOK,
        )
    return HookSpec(hook=hook, before=_normalize_scope(before), after=_normalize_scope(after))


def coerce_hook_spec(entry: Any) -> HookSpec:
    """Normalize one hook configuration entry into a HookSpec.

    Accepted forms:
        - Hook instance (global before and after)
        - HookSpec instance
        - (hook, {"before_validator": ..., "after_validator": ...}) tuple
        - {"hook": hook, "before_validator": ..., "after_validator": ...} dict

    Raises:
        ConfigurationError: For any other shape
    """
    if isinstance(entry, HookSpec):
        return entry
    if isinstance(entry, Hook):
        return HookSpec(hook=entry)
    if isinstance(entry, tuple) and len(entry) == 2 and isinstance(entry[1], Mapping):
        hook, scope = entry
        return create_hook_spec(
            hook,
            before=scope.get("before_validator"),
            after=scope.get("after_validator"),
        )
    if isinstance(entry, Mapping) and "hook" in entry:
        return create_hook_spec(
            entry["hook"],
            before=entry.get("before_validator"),
            after=entry.get("after_validator"),
        )
    raise ConfigurationError(f"Invalid hook definition: {entry!r}", code=INVALID_HOOK)


def _normalize_scope(scope: ScopeArg) -> tuple[str, ...]:
    if scope is None or scope == "":
        return ()
    if isinstance(scope, str):
        return (scope,)
    return tuple(str(label) for label in scope if str(label))
