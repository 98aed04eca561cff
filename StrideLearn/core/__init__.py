from .tensor.tensor import Tensor
from .tensor.utils import TensorFactory

from .backend.backend import gpu_available
from .backend.backend import is_gpu
from .backend.backend import device_name
from .backend.backend import get_device
from .backend.backend import use_gpu
from .backend.backend import use_cpu
from .backend.backend import set_seed
from .backend.backend import set_dtype
from .backend.backend import set_test_tolerance
from .backend.backend import set_grad_check_step

__all__ = [
    "Tensor",
    "TensorFactory",
    "gpu_available",
    "is_gpu",
    "device_name",
    "get_device",
    "use_gpu",
    "use_cpu",
    "set_seed",
    "set_dtype",
    "set_test_tolerance",
    "set_grad_check_step"
]
