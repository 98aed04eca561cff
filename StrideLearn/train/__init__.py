from . import gradient_check

__all__ = [
    "gradient_check"
]
