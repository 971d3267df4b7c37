"""
Model modules
"""

from .face import Face, FaceState, FeatureCorrespondence
from .model_loader import FaceModelLoader

__all__ = [
    'Face',
    'FaceState',
    'FeatureCorrespondence',
    'FaceModelLoader'
]
