"""
Solver modules
"""

from .robust_estimator import RobustEstimator
from .pose_refiner import PoseRefiner, RefinementResult

__all__ = [
    'RobustEstimator',
    'PoseRefiner',
    'RefinementResult'
]
