"""
点跟踪器基类
定义外部2D点跟踪器的通用接口
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Tuple
import numpy as np

# {点id: (u, v)}, id在连续的track调用之间保持稳定
TrackedPoints = Dict[int, Tuple[float, float]]


class PointTracker(ABC):
    """2D点跟踪器基类"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}

    @abstractmethod
    def initialize(self, image: np.ndarray, mask: Optional[np.ndarray] = None) -> TrackedPoints:
        """
        在掩码区域内重新检测特征点

        Args:
            image: 灰度图像 [H, W]
            mask: 检测掩码 [H, W], 非零区域有效

        Returns:
            新检测点 {id: (u, v)}, 之前的id全部失效
        """
        pass

    @abstractmethod
    def track(self, image: np.ndarray) -> TrackedPoints:
        """
        跟踪上一帧的特征点到当前帧

        Returns:
            仍被跟踪的点 {id: (u, v)}, 丢失的点不再出现
        """
        pass

    def get_nb_features(self) -> int:
        return 0
