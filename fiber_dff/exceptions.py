"""
Error types raised by the dF/F processing pipeline.

All of them are ``ValueError`` subclasses so callers that already guard
against bad input with ``except ValueError`` keep working.
"""


class PhotometryProcessingError(ValueError):
    """Base class for processing failures."""


class InvalidWindowError(PhotometryProcessingError):
    """Requested time window is outside the recording or empty."""


class InsufficientDataError(PhotometryProcessingError):
    """Channel too short for the requested filter order or fit."""


class DegenerateFitError(PhotometryProcessingError):
    """Reference channel has zero variance, so the slope is undefined."""


class DivisionByZeroError(PhotometryProcessingError, ZeroDivisionError):
    """Fitted reference reaches zero, making dF/F undefined."""
