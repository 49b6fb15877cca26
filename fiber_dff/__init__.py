"""
Fiber Photometry dF/F

Single-session dF/F extraction from a calcium-dependent signal channel
and an isosbestic reference channel (Lerner et al., Cell 2015).
"""

__version__ = "0.1.0"

from .config import ProcessingConfig, load_config
from .exceptions import (
    PhotometryProcessingError,
    InvalidWindowError,
    InsufficientDataError,
    DegenerateFitError,
    DivisionByZeroError,
)
from .recording import Recording
from .preprocessing import Preprocessor, lowpass
from .normalization import Normalizer, FitParameters
from .pipeline import SessionResult, process

__all__ = [
    'ProcessingConfig',
    'load_config',
    'PhotometryProcessingError',
    'InvalidWindowError',
    'InsufficientDataError',
    'DegenerateFitError',
    'DivisionByZeroError',
    'Recording',
    'Preprocessor',
    'lowpass',
    'Normalizer',
    'FitParameters',
    'SessionResult',
    'process',
]
