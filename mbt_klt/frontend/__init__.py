"""
Frontend modules
"""

from .point_tracker import PointTracker
from .klt_tracker import KltPointTracker
from .face_observation import FaceObservationModel

__all__ = [
    'PointTracker',
    'KltPointTracker',
    'FaceObservationModel'
]
