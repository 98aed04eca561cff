from .core import Tensor
from .core import TensorFactory

from . import core
from . import nn
from . import train
from . import utils

__all__ = [
    "Tensor",
    "TensorFactory",
    "core",
    "nn",
    "train",
    "utils"
]
