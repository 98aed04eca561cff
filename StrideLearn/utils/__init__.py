from .accuracy import Accuracy
from .accuracy import tensor_errors
from .accuracy import tensors_match
from .accuracy import assert_tensor_equals

from . import loggers

__all__ = [
    "Accuracy",
    "tensor_errors",
    "tensors_match",
    "assert_tensor_equals",
    "loggers"
]
