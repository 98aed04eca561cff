import StrideLearn.core.backend.backend as backend


def _normalize_shape(shape):
    if isinstance(shape, int):
        shape = (shape,)
    if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
        shape = shape[0]
    shape = tuple(int(s) for s in shape)
    for s in shape:
        if s < 0:
            raise ValueError(f"Shape dimensions must be non-negative, got {shape}")
    return shape


def _prod(shape):
    total = 1
    for s in shape:
        total *= s
    return total


class Tensor:
    # ======================================================
    # Core initialization
    # ======================================================
    def __init__(self, shape=(), data=None, start_index=0, dtype=None):
        """
        Tensor(shape=(), data=None, start_index=0, dtype=None)

        N-dimensional array stored as a flat buffer plus a shape and a start
        offset into that buffer. Elements are laid out row-major beginning at
        `start_index`. A tensor whose buffer is shared with a larger tensor is
        a sub-tensor and can be used to exercise stride handling.

        Args:
            shape (tuple): Dimension sizes. Dimension 0 is the mini-batch axis
                for layer inputs and outputs.
            data (ndarray, optional): 1-D buffer to wrap without copying.
                Allocated (zero filled) when omitted.
            start_index (int): Offset of the first element inside `data`.
            dtype (np.dtype, optional): Buffer dtype when allocating.
        """
        shape = _normalize_shape(shape)
        if start_index < 0:
            raise ValueError(f"start_index must be >= 0, got {start_index}")

        if data is None:
            data = backend.xp.zeros(start_index + _prod(shape), dtype=(dtype or backend.DTYPE))
            self.is_sub = False
        else:
            if data.ndim != 1:
                raise ValueError(f"Tensor buffer must be 1-D, got ndim={data.ndim}")
            if data.size < start_index + _prod(shape):
                raise ValueError(
                    f"Buffer of length {data.size} too small for start_index={start_index} and shape={shape}")
            self.is_sub = True

        self.data = data
        self.start_index = int(start_index)
        self._shape = shape

    @classmethod
    def from_array(cls, array, dtype=None):
        """Create a tensor holding a copy of an array-like value."""
        arr = backend.xp.array(array, dtype=(dtype or backend.DTYPE))
        out = cls(arr.shape, dtype=arr.dtype)
        out.view()[...] = arr
        return out

    # ======================================================
    # Shape
    # ======================================================
    @property
    def shape(self):
        return self._shape

    @property
    def ndim(self):
        return len(self._shape)

    @property
    def size(self):
        return _prod(self._shape)

    @property
    def dtype(self):
        return self.data.dtype

    @property
    def strides(self):
        """Row-major strides in elements (not bytes)."""
        strides = [1] * len(self._shape)
        for i in range(len(self._shape) - 2, -1, -1):
            strides[i] = strides[i + 1] * self._shape[i + 1]
        return tuple(strides)

    def length(self, dim=None):
        """Total number of elements, or the size of dimension `dim`."""
        if dim is None:
            return self.size
        return self._shape[dim]

    def reshape(self, *shape):
        """
        Change the shape in place.

        The buffer is reallocated when it is too small. A sub-tensor cannot
        grow past the end of the buffer it shares.
        """
        shape = _normalize_shape(shape)
        needed = self.start_index + _prod(shape)
        if needed > self.data.size:
            if self.is_sub:
                raise ValueError(
                    f"Cannot reshape sub-tensor to {shape}: buffer length {self.data.size} < {needed}")
            self.data = backend.xp.zeros(needed, dtype=self.data.dtype)
        self._shape = shape
        return self

    # ======================================================
    # Buffer access
    # ======================================================
    def flat_view(self):
        """1-D view over the live region of the buffer."""
        return self.data[self.start_index:self.start_index + self.size]

    def view(self):
        """Shaped view over the live region of the buffer."""
        return self.flat_view().reshape(self._shape)

    def numpy(self):
        """Return a NumPy copy of the tensor contents."""
        return backend.to_numpy(self.view()).copy()

    def index_of(self, *idx):
        """Offset of element `idx` inside `data`."""
        if len(idx) != self.ndim:
            raise ValueError(f"Expected {self.ndim} indices, got {len(idx)}")
        offset = self.start_index
        for i, (n, s, stride) in enumerate(zip(idx, self._shape, self.strides)):
            if not 0 <= n < s:
                raise IndexError(f"Index {n} out of bounds for dimension {i} with size {s}")
            offset += n * stride
        return offset

    def get(self, *idx):
        return float(self.data[self.index_of(*idx)])

    def set(self, value, *idx):
        self.data[self.index_of(*idx)] = value

    def get_flat(self, i):
        """Element at flat position `i` relative to the start of the tensor."""
        return float(self.data[self.start_index + i])

    def set_flat(self, i, value):
        self.data[self.start_index + i] = value

    def indices(self):
        """Iterate over every addressable flat position, independent of rank."""
        return iter(range(self.size))

    def __getitem__(self, idx):
        return self.view()[idx]

    def __setitem__(self, idx, value):
        self.view()[idx] = value

    def __len__(self):
        """Return length of first dimension. Raises TypeError for scalars."""
        if self.ndim == 0:
            raise TypeError("Scalar tensor has no length")
        return self._shape[0]

    # ======================================================
    # Whole-tensor operations
    # ======================================================
    def zero(self):
        self.flat_view()[...] = 0
        return self

    def set_to(self, other: "Tensor"):
        """Reshape to match `other` and copy its values."""
        self.reshape(other.shape)
        self.flat_view()[...] = other.flat_view()
        return self

    def create_like(self) -> "Tensor":
        """New contiguous zero tensor with the same shape and dtype."""
        return Tensor(self._shape, dtype=self.dtype)

    def copy(self) -> "Tensor":
        return self.create_like().set_to(self)

    def subtensor(self, offset, shape) -> "Tensor":
        """Tensor sharing this buffer, starting `offset` elements after `start_index`."""
        return Tensor(shape, data=self.data, start_index=self.start_index + offset)

    # ======================================================
    # Display
    # ======================================================
    def __repr__(self):
        """
        String representation with truncated array contents.
        Shows first few elements per dimension for readability.
        """
        def truncate(arr):
            if arr.ndim == 0:
                return str(arr.item())
            if arr.ndim == 1:
                s = arr[:3]
                return f"{s.tolist()}..." if arr.size > 3 else f"{s.tolist()}"
            s = arr[:3]
            rows = [truncate(row) for row in s]
            return "[" + ",\n ".join(rows) + ("..." if arr.shape[0] > 3 else "") + "]"

        data_str = truncate(self.view())
        return f"Tensor(shape={self.shape}, start_index={self.start_index}, dtype={self.dtype}, data={data_str})"
