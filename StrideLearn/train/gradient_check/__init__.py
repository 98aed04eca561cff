from .numerical_gradient import NumericalGradient
from .gradient_check import gradient_check

__all__ = [
    "NumericalGradient",
    "gradient_check"
]
