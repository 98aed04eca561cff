from .gradcheck_logger import GradCheckLogger

__all__ = [
    "GradCheckLogger"
]
