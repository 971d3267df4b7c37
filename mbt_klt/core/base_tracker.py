"""
跟踪器基类
定义基于模型的跟踪器的通用接口
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import numpy as np

RIGID_TOLERANCE = 1e-6


class BaseTracker(ABC):
    """跟踪器基类"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.c_M_o = np.eye(4)

    @abstractmethod
    def init(self, image: np.ndarray):
        """
        初始化跟踪

        Args:
            image: 当前帧图像, 位姿取自 set_pose 设置的值
        """
        pass

    @abstractmethod
    def track(self, image: np.ndarray) -> np.ndarray:
        """
        跟踪方法

        Args:
            image: 当前帧图像

        Returns:
            pose: 4x4位姿矩阵 cMo
        """
        pass

    def set_pose(self, pose: np.ndarray):
        """外部设置当前位姿"""
        pose = np.asarray(pose, dtype=np.float64)
        if pose.shape != (4, 4):
            raise ValueError(f"Pose must be a 4x4 matrix, got {pose.shape}")
        if not np.all(np.isfinite(pose)):
            raise ValueError("Pose contains non-finite values")

        # 旋转块必须正交且行列式为1, 末行为 [0, 0, 0, 1]
        R = pose[:3, :3]
        if not np.allclose(pose[3], [0.0, 0.0, 0.0, 1.0], atol=RIGID_TOLERANCE):
            raise ValueError(f"Pose bottom row must be [0, 0, 0, 1], got {pose[3]}")
        if not np.allclose(R.T @ R, np.eye(3), atol=RIGID_TOLERANCE) \
                or abs(np.linalg.det(R) - 1.0) > RIGID_TOLERANCE:
            raise ValueError("Pose rotation block is not a proper rotation matrix")

        self.c_M_o = pose.copy()

    def get_pose(self) -> np.ndarray:
        return self.c_M_o.copy()
