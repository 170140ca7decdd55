"""
errors.py
---------

Exception hierarchy for the pre-processor.

Setup errors are raised before any work is queued. Fatal frame errors
abort the whole run: they mean an input is unusable or the noise/clamp
stages produced an inconsistent training example.
"""

__all__ = [
    "DepthAugError",
    "ConfigError",
    "LabelMapError",
    "FatalFrameError",
    "FrameReadError",
    "UnmappedLabelError",
    "InvariantViolation",
]


class DepthAugError(Exception):
    """Base class for all pre-processor errors."""


# -----------------------------------------------------------------------------
# Setup-fatal
# -----------------------------------------------------------------------------
class ConfigError(DepthAugError):
    """Bad config file, bad noise op or conflicting options."""


class LabelMapError(DepthAugError):
    """Label map JSON missing, unparseable or inconsistent."""


# -----------------------------------------------------------------------------
# Fatal during processing
# -----------------------------------------------------------------------------
class FatalFrameError(DepthAugError):
    """Any error that must stop every worker."""


class FrameReadError(FatalFrameError):
    """A label or depth input could not be read or has the wrong size."""


class UnmappedLabelError(FatalFrameError):
    """A grey value in a label image has no entry in the label map."""


class InvariantViolation(FatalFrameError):
    """Post-noise depth/label consistency check failed."""

    def __init__(self, message: str, x: int = -1, y: int = -1):
        super().__init__(message if x < 0 else f"{message} at ({x}, {y})")
        self.x = x
        self.y = y
