"""Submission processing pipeline.

This module implements the pipeline core:
- Mutable SubmissionRecord owned by the executor for one run
- Read-only snapshots handed to validators
- Scoped hooks dispatched with fault isolation
- A single result envelope per run

Formal Model:
    hooks_before* → (hooks_before[l] → validator[l] → hooks_after[l])* → hooks_after* → send

    Hook failures are discarded; the first ValidationError ends the run.
"""

from formpipe.pipeline.record import SubmissionRecord, channel_pair
from formpipe.pipeline.snapshot import ReadOnlySnapshot
from formpipe.pipeline.hook import FunctionHook, Hook, HookContext, HookSpec, create_hook_spec
from formpipe.pipeline.dispatcher import HookDispatcher
from formpipe.pipeline.validators import ValidationOutcome, ValidatorRegistry
from formpipe.pipeline.envelope import PipelineResult

__all__ = [
    "SubmissionRecord",
    "channel_pair",
    "ReadOnlySnapshot",
    "Hook",
    "FunctionHook",
    "HookContext",
    "HookSpec",
    "create_hook_spec",
    "HookDispatcher",
    "ValidationOutcome",
    "ValidatorRegistry",
    "PipelineResult",
]
