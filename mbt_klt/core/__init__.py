"""
Core modules
"""

from .exceptions import (
    MbtTrackingError,
    ConfigurationError,
    InsufficientDataError,
    NumericDegeneracyError
)

__all__ = [
    'MbtTrackingError',
    'ConfigurationError',
    'InsufficientDataError',
    'NumericDegeneracyError'
]
