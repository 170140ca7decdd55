from .rng import RNG
from .logging_utils import configure_logging, LOGGER_NAME


__all__ = [
    "rng",
    "logging_utils",
]
