"""Hook registry and dispatcher.

Partitions configured hooks into dispatch buckets and invokes them at the
right pipeline phase:

    before_global     every HookSpec with a global before-scope
    before_by_label   label -> hooks scoped before that validator
    after_global      every HookSpec with a global after-scope
    after_by_label    label -> hooks scoped after that validator
    all_hooks         every hook, for after-send and send-failure phases

Every invocation goes through ``_invoke_isolated``: a failing hook is
swallowed so enrichment and observability code can never destabilize the
primary flow.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from formpipe.pipeline.hook import Hook, HookContext, HookSpec, ValidatorsMeta, coerce_hook_spec
from formpipe.pipeline.labels import derive_label
from formpipe.pipeline.record import safe_copy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Buckets:
    all_hooks: tuple[Hook, ...] = ()
    before_global: tuple[Hook, ...] = ()
    after_global: tuple[Hook, ...] = ()
    before_by_label: dict[str, tuple[Hook, ...]] = field(default_factory=dict)
    after_by_label: dict[str, tuple[Hook, ...]] = field(default_factory=dict)


def _partition(specs: Iterable[HookSpec]) -> _Buckets:
    all_hooks: list[Hook] = []
    before_global: list[Hook] = []
    after_global: list[Hook] = []
    before_by_label: dict[str, list[Hook]] = {}
    after_by_label: dict[str, list[Hook]] = {}

    for spec in specs:
        all_hooks.append(spec.hook)

        if spec.before_is_global:
            before_global.append(spec.hook)
        for label in spec.before:
            before_by_label.setdefault(label, []).append(spec.hook)

        if spec.after_is_global:
            after_global.append(spec.hook)
        for label in spec.after:
            after_by_label.setdefault(label, []).append(spec.hook)

    return _Buckets(
        all_hooks=tuple(all_hooks),
        before_global=tuple(before_global),
        after_global=tuple(after_global),
        before_by_label={k: tuple(v) for k, v in before_by_label.items()},
        after_by_label={k: tuple(v) for k, v in after_by_label.items()},
    )


class HookDispatcher:
    """Routes hooks into phase buckets and dispatches them with fault isolation."""

    def __init__(self, hooks: Iterable[Any] = ()) -> None:
        self._specs: tuple[HookSpec, ...] = ()
        self._buckets = _Buckets()
        self.configure(hooks)

    def configure(self, hooks: Iterable[Any]) -> None:
        """Replace the full hook set.

        Entries are normalized first; buckets are swapped only once every
        entry is valid, so a bad entry leaves the previous set untouched.

        Args:
            hooks: Hook instances, HookSpecs, or scoped entries
                (see ``coerce_hook_spec``)

        Raises:
            ConfigurationError: If any entry is malformed
        """
        specs = tuple(coerce_hook_spec(entry) for entry in hooks)
        buckets = _partition(specs)
        self._specs = specs
        self._buckets = buckets

    def add(self, entry: Any) -> HookSpec:
        """Append one hook after the existing ones."""
        spec = coerce_hook_spec(entry)
        self.configure([*self._specs, spec])
        return spec

    @property
    def specs(self) -> tuple[HookSpec, ...]:
        return self._specs

    @property
    def all_hooks(self) -> tuple[Hook, ...]:
        return self._buckets.all_hooks

    @property
    def before_global(self) -> tuple[Hook, ...]:
        return self._buckets.before_global

    @property
    def after_global(self) -> tuple[Hook, ...]:
        return self._buckets.after_global

    def before_for(self, label: str) -> tuple[Hook, ...]:
        return self._buckets.before_by_label.get(label, ())

    def after_for(self, label: str) -> tuple[Hook, ...]:
        return self._buckets.after_by_label.get(label, ())

    # ------------------------------------------------------------------
    # Dispatch points
    # ------------------------------------------------------------------

    def before_validate_global(self, ctx: HookContext) -> None:
        for hook in self.before_global:
            self._invoke_isolated(hook, "on_before_validate", ctx)

    def before_validate(self, label: str, ctx: HookContext) -> None:
        for hook in self.before_for(label):
            self._invoke_isolated(hook, "on_before_validate", ctx)

    def after_validate(self, label: str, ctx: HookContext, subset: ValidatorsMeta) -> None:
        for hook in self.after_for(label):
            self._invoke_isolated(hook, "on_after_validate", ctx, subset, copy_last=True)

    def after_validate_global(self, ctx: HookContext, validators_meta: ValidatorsMeta) -> None:
        for hook in self.after_global:
            self._invoke_isolated(hook, "on_after_validate", ctx, validators_meta, copy_last=True)

    def after_send(self, ctx: HookContext, message_id: str = "") -> None:
        for hook in self.all_hooks:
            self._invoke_isolated(hook, "on_after_send", ctx, message_id)

    def send_failure(self, ctx: HookContext, error: BaseException) -> None:
        for hook in self.all_hooks:
            self._invoke_isolated(hook, "on_send_failure", ctx, error)

    def _invoke_isolated(self, hook: Hook, method: str, *args: Any, copy_last: bool = False) -> None:
        """Invoke one hook method, swallowing any error it raises.

        This is the fault-isolation boundary for hooks. Failures are only
        visible at debug level. With ``copy_last`` the final argument is
        handed over as a private copy, taken inside the boundary.
        """
        try:
            if copy_last:
                args = (*args[:-1], safe_copy(args[-1]))
            getattr(hook, method)(*args)
        except Exception as e:
            name = derive_label(hook, kind="hook", sequence=self._position(hook))
            logger.debug(f"Hook '{name}' {method} failed: {type(e).__name__}: {e}", exc_info=True)

    def _position(self, hook: Hook) -> int:
        for index, spec in enumerate(self._specs, start=1):
            if spec.hook is hook:
                return index
        return 0
