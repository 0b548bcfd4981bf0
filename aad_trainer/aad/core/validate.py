"""
Numeric validation helpers.

Non-finite values in a forward output or a backward delta are correctness
violations, not recoverable conditions. `check_finite` is called by the
engine when `CoreSettings.validate_numerics` is on; `check_gradients`
compares back-propagated parameter gradients against finite differences
computed by scipy.
"""

from __future__ import annotations

from typing import Dict, Sequence

import numpy as np
from scipy.optimize import approx_fprime

from .delta import DeltaSet, StateSet
from .result import ConstantResult


def check_finite(values: np.ndarray, what: str) -> np.ndarray:
    """Raise FloatingPointError if `values` holds NaN or inf; return it otherwise."""
    arr = np.asarray(values)
    if not np.all(np.isfinite(arr)):
        n_bad = int(np.size(arr) - np.count_nonzero(np.isfinite(arr)))
        raise FloatingPointError(f"{what}: {n_bad} non-finite value(s) in array of shape {arr.shape}")
    return values


def measure_gradient(layer, inputs: Sequence[np.ndarray]) -> DeltaSet:
    """
    Run one forward/backward pass of `layer` on constant inputs and return the
    parameter gradients of the summed output.
    """
    result = layer.eval(*[ConstantResult(x) for x in inputs])
    buffer = DeltaSet()
    result.accumulate(buffer)
    return buffer


def check_gradients(layer,
                    inputs: Sequence[np.ndarray],
                    epsilon: float = 1e-6,
                    tolerance: float = 1e-4) -> Dict[str, float]:
    """
    Compare back-propagated gradients with scipy finite differences.

    Args:
        layer: Layer (or DAGNetwork) whose summed output is differentiated
        inputs: Constant input arrays (leading batch axis)
        epsilon: Finite-difference step passed to approx_fprime
        tolerance: Maximum allowed absolute difference

    Returns:
        Dictionary with 'max_error', 'n_params' and the measured vectors.

    Raises:
        AssertionError: if any component differs by more than `tolerance`.
    """
    buffer = measure_gradient(layer, inputs)
    keys = buffer.keys()
    analytic = buffer.to_vector(keys)
    snapshot = StateSet.from_deltas(buffer)
    origin = snapshot.to_vector(keys)

    def _objective(vector: np.ndarray) -> float:
        # write the probe into the live buffers, then evaluate
        probe = snapshot.copy()
        probe.from_vector(vector, keys)
        probe.restore()
        out = layer.eval(*[ConstantResult(x) for x in inputs])
        return float(np.sum(out.data))

    try:
        numeric = approx_fprime(origin, _objective, epsilon)
    finally:
        snapshot.restore()

    max_error = float(np.max(np.abs(numeric - analytic))) if analytic.size else 0.0
    if max_error > tolerance:
        raise AssertionError(
            f"Gradient check failed: max |numeric - analytic| = {max_error:.3e} > {tolerance:.1e}"
        )
    return {
        'max_error': max_error,
        'n_params': int(analytic.size),
        'analytic': analytic,
        'numeric': numeric,
    }
