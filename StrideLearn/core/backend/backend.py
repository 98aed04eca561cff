"""
Backend runtime selector for StrideLearn.

- Single import point for array backend (`xp`) and core runtime flags.
- Toggle CPU (NumPy) / GPU (CuPy) buffers.
- Centralized dtype, seed and numerical tolerance constants.
- Minimal API surface with global-access pattern:
    >>> import StrideLearn.core.backend.backend as backend
    >>> xp = backend.xp
    >>> DTYPE = backend.DTYPE

This module is intentionally stateful to be easy to use in userland code.
"""

from __future__ import annotations

import numpy as _np
from StrideLearn.core.backend.config import CONFIG


# ---------------------------
# Optional GPU backend (CuPy)
# ---------------------------
try:
    import cupy as _cp
    _CUPY_AVAILABLE = True
except ImportError:
    _cp = None
    _CUPY_AVAILABLE = False


# ---------------------------
# Public runtime state (globals)
# ---------------------------
xp = _np                       # current array module (NumPy or CuPy)
USING = "cpu"                  # "cpu" | "gpu"
SEED = CONFIG.get("seed", 997)

# Dtypes
DTYPE = _np.float64

# Tolerances
TEST_TOL_F64 = float(CONFIG.get("test_tol", 1e-8))          # standard double precision test tolerance
GRAD_CHECK_STEP = float(CONFIG.get("grad_check_step", 1e-5)) # finite difference step

VERBOSE = bool(CONFIG.get("verbose", False))

_DTYPE_MAP = {"float32": _np.float32, "float64": _np.float64}


# ===========================
# Introspection / utilities
# ===========================
def gpu_available() -> bool:
    """Return True if CuPy is importable."""
    return _CUPY_AVAILABLE


def is_gpu() -> bool:
    """Return True if current backend is GPU (CuPy)."""
    return USING == "gpu"


def device_name() -> str:
    """Human-readable device name."""
    if is_gpu():
        dev_id = _cp.cuda.Device().id
        return f"GPU:{dev_id} (CuPy)"
    return "CPU (NumPy)"


def get_device() -> str:
    """Return current device string: 'cpu' or 'gpu'."""
    return USING


def to_numpy(array):
    """Return a NumPy copy of `array` regardless of backend."""
    if is_gpu() and isinstance(array, _cp.ndarray):
        return _cp.asnumpy(array)
    return _np.asarray(array)


# ===========================
# Backend switching
# ===========================
def use_gpu():
    """
    Switch backend to GPU (CuPy).
    Raises ImportError if CuPy is not available.
    """
    global xp, USING
    if not _CUPY_AVAILABLE:
        raise ImportError("CuPy is not installed. Run `pip install cupy` to use GPU.")
    xp = _cp
    USING = "gpu"
    _cp.random.seed(SEED)
    print(f"[StrideLearn] Using {device_name()}")


def use_cpu():
    """Switch backend to CPU (NumPy)."""
    global xp, USING
    xp = _np
    USING = "cpu"
    _np.random.seed(SEED)


def _auto_select_device():
    device = str(CONFIG.get("device", "cpu")).lower()
    if device == "gpu" and _CUPY_AVAILABLE:
        use_gpu()
    else:
        if device == "gpu":
            print("[StrideLearn] CuPy not available, falling back to CPU.")
        use_cpu()


# ===========================
# Runtime configuration
# ===========================
def set_seed(seed: int):
    """Set RNG seed for both NumPy and CuPy (if active)."""
    global SEED
    SEED = int(seed)
    _np.random.seed(SEED)
    if is_gpu():
        _cp.random.seed(SEED)


def set_dtype(dtype: str = "float64"):
    """Set DTYPE used for newly allocated tensor buffers."""
    global DTYPE
    if dtype not in _DTYPE_MAP:
        raise ValueError(f"dtype must be one of {list(_DTYPE_MAP)}")
    DTYPE = _DTYPE_MAP[dtype]


def set_test_tolerance(tol: float):
    """Set the standard double precision test tolerance."""
    global TEST_TOL_F64
    if tol <= 0:
        raise ValueError("tolerance must be > 0")
    TEST_TOL_F64 = float(tol)


def set_grad_check_step(step: float):
    """Set the default finite difference step used by the numerical gradient."""
    global GRAD_CHECK_STEP
    if step <= 0:
        raise ValueError("step must be > 0")
    GRAD_CHECK_STEP = float(step)


def rng(seed=None):
    """Create a random generator on the current backend, seeded from SEED by default."""
    return xp.random.default_rng(SEED if seed is None else seed)


set_dtype(str(CONFIG.get("dtype", "float64")))
_auto_select_device()
