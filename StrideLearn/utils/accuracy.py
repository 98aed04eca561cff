from typing import NamedTuple

import numpy as np

import StrideLearn.core.backend.backend as backend
from StrideLearn.core import Tensor


class Accuracy(NamedTuple):
    """
    Tolerance used to decide whether two floating point values match.

    Two values `e` and `f` match when `|e - f| <= absolute` or
    `|e - f| <= relative * max(|e|, |f|)`.
    """
    relative: float
    absolute: float

    def matches(self, expected, found) -> bool:
        error = abs(expected - found)
        return error <= self.absolute or error <= self.relative * max(abs(expected), abs(found))


Accuracy.STANDARD = Accuracy(1e-8, 1e-8)
Accuracy.RELAXED_A = Accuracy(1e-5, 1e-6)
Accuracy.RELAXED_B = Accuracy(1e-3, 1e-4)


def tensor_errors(expected: Tensor, found: Tensor):
    """
    Return (max_abs_error, max_rel_error) between two tensors of equal shape.
    """
    if expected.shape != found.shape:
        raise ValueError(f"Shape mismatch: expected {expected.shape}, found {found.shape}")
    if expected.size == 0:
        return 0.0, 0.0

    xp = backend.xp
    e = expected.flat_view()
    f = found.flat_view()
    abs_err = xp.abs(e - f)
    scale = xp.maximum(xp.abs(e), xp.abs(f))
    rel_err = abs_err / xp.maximum(scale, 1e-300)
    return float(abs_err.max()), float(rel_err.max())


def _mismatches(expected: Tensor, found: Tensor, tolerance: Accuracy):
    xp = backend.xp
    e = expected.flat_view()
    f = found.flat_view()
    error = xp.abs(e - f)
    bound = xp.maximum(tolerance.absolute, tolerance.relative * xp.maximum(xp.abs(e), xp.abs(f)))
    return xp.nonzero(~(error <= bound))[0]


def tensors_match(expected: Tensor, found: Tensor, tolerance: Accuracy = Accuracy.STANDARD) -> bool:
    """True when shapes agree and every element matches within `tolerance`."""
    if expected.shape != found.shape:
        return False
    return _mismatches(expected, found, tolerance).size == 0


def assert_tensor_equals(expected: Tensor, found: Tensor, tolerance: Accuracy = Accuracy.STANDARD):
    """
    Assert element-wise equality of two tensors within `tolerance`.

    Raises:
        AssertionError: On a shape mismatch or at the first element that
            does not match, naming its index.
    """
    if expected.shape != found.shape:
        raise AssertionError(f"Shape mismatch: expected {expected.shape}, found {found.shape}")

    bad = _mismatches(expected, found, tolerance)
    if bad.size > 0:
        i = int(bad[0])
        idx = tuple(int(v) for v in np.unravel_index(i, expected.shape))
        raise AssertionError(
            f"Tensors differ at index {idx}: expected={expected.get_flat(i):.10e}, found={found.get_flat(i):.10e}, "
            f"tolerance={tolerance}, {bad.size} of {expected.size} elements mismatched")
