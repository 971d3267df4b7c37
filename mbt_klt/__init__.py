"""
MBT-KLT: model-based pose tracking with KLT features

Planar-face object model, per-face homography observation model and a
robust virtual visual servoing pose refinement.
"""

from .version import __version__
from .core.mbt_klt_tracker import MbtKltTracker
from .core.exceptions import (
    MbtTrackingError,
    ConfigurationError,
    InsufficientDataError,
    NumericDegeneracyError
)
from .model.face import Face, FaceState
from .model.model_loader import FaceModelLoader
from .utils.camera import CameraParameters
from .utils.config_manager import ConfigManager

__all__ = [
    '__version__',
    'MbtKltTracker',
    'MbtTrackingError',
    'ConfigurationError',
    'InsufficientDataError',
    'NumericDegeneracyError',
    'Face',
    'FaceState',
    'FaceModelLoader',
    'CameraParameters',
    'ConfigManager'
]

# Package metadata
__author__ = "MBT-KLT Team"
__email__ = "team@mbt-klt.dev"

def get_version():
    """获取版本信息"""
    return __version__
