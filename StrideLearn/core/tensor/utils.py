import StrideLearn.core.backend.backend as backend
from .tensor import Tensor


def outer_length(shape, start=0):
    """Number of elements spanned by dimensions `start` onward."""
    total = 1
    for s in tuple(shape)[start:]:
        total *= int(s)
    return total

def append_dim(shape, n):
    """Return `shape` with one more trailing dimension of size `n`."""
    return tuple(shape) + (int(n),)

def prepend_dim(n, shape):
    """Return `shape` with a leading dimension of size `n`, e.g. the mini-batch axis."""
    return (int(n),) + tuple(shape)

def ensure_shape(tensor: Tensor, shape, name="tensor"):
    """Raise ValueError unless `tensor.shape == shape`."""
    shape = tuple(shape)
    if tensor.shape != shape:
        raise ValueError(f"{name} shape mismatch: expected {shape}, got {tensor.shape}")


class TensorFactory:
    """
    Creates tensors for tests and gradient checks.

    With `sub=True` the tensor is a sub-tensor placed at a random offset
    inside a larger buffer filled with random values, so any code that ignores
    `start_index` reads the wrong elements.

    Args:
        rng: Random generator. Defaults to one seeded from backend.SEED.
        dtype: Buffer dtype. Defaults to backend.DTYPE.
    """
    def __init__(self, rng=None, dtype=None):
        self.rng = rng if rng is not None else backend.rng()
        self.dtype = dtype or backend.DTYPE

    def _uniform(self, n, low, high):
        return (low + (high - low) * self.rng.random(n)).astype(self.dtype)

    def _allocate(self, shape, sub):
        shape = tuple(shape)
        if not sub:
            return Tensor(shape, dtype=self.dtype)
        offset = int(self.rng.integers(1, 10))
        padding = int(self.rng.integers(1, 10))
        n = offset + outer_length(shape) + padding
        data = self._uniform(n, -1.0, 1.0)
        return Tensor(shape, data=data, start_index=offset)

    def zeros(self, shape, sub=False) -> Tensor:
        out = self._allocate(shape, sub)
        return out.zero()

    def random(self, shape, sub=False, low=-1.0, high=1.0) -> Tensor:
        out = self._allocate(shape, sub)
        out.flat_view()[...] = self._uniform(out.size, low, high)
        return out

    def random_minibatch(self, minibatch, shape, sub=False, low=-1.0, high=1.0) -> Tensor:
        """Random tensor of shape (minibatch, *shape)."""
        return self.random(prepend_dim(minibatch, shape), sub=sub, low=low, high=high)
