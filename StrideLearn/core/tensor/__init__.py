from .tensor import Tensor

from .utils import TensorFactory
from .utils import outer_length
from .utils import append_dim
from .utils import prepend_dim
from .utils import ensure_shape

__all__ = [
    "Tensor",
    "TensorFactory",
    "outer_length",
    "append_dim",
    "prepend_dim",
    "ensure_shape"
]
