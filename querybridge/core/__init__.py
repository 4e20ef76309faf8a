from ._log_helper import warn
from .data_model import DataModel

__all__ = [
    "DataModel",
    "warn",
]
