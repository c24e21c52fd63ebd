"""Built-in hooks.

Hooks subclass ``Hook`` and override only the lifecycle phases they use.
"""

from formpipe.pipeline.hooks.annotate_ip import AnnotateIpHook
from formpipe.pipeline.hooks.lift_field import RequestFieldHook
from formpipe.pipeline.hooks.normalize import NormalizeWhitespaceHook

__all__ = [
    "AnnotateIpHook",
    "NormalizeWhitespaceHook",
    "RequestFieldHook",
]
