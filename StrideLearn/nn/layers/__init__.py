from .base_layer import BaseLayer

from .batchnorm import BatchNorm

__all__ = [
    "BaseLayer",
    "BatchNorm"
]
