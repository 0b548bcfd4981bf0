# aad/core/settings.py
from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass, replace
from typing import Optional


@dataclass
class CoreSettings:
    """
    Process-wide switches for the evaluation engine.

    Attributes
    ----------
    prune_dead_branches : bool
        When True, a result is alive only if its layer owns a non-frozen
        parameter or one of its inputs is alive; dead subgraphs are skipped
        during backward. When False every layer result is alive and backward
        traverses the whole graph (frozen layers still deposit nothing).
    validate_numerics : bool
        When True, forward outputs and backward deltas are checked for
        non-finite values and a FloatingPointError is raised.
    """
    prune_dead_branches: bool = True
    validate_numerics: bool = False


# Global settings object (swapped by use_settings)
settings = CoreSettings()


def current() -> CoreSettings:
    """Return the active settings; always read through here so swaps are visible."""
    return settings


@contextmanager
def use_settings(base: Optional[CoreSettings] = None, **overrides):
    """
    Context manager to temporarily replace the engine settings:
        with use_settings(prune_dead_branches=False):
            ... evaluate / backpropagate ...
    """
    global settings
    prev = settings
    try:
        settings = replace(base or prev, **overrides)
        yield settings
    finally:
        settings = prev
