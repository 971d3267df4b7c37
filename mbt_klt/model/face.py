"""
面片数据结构
平面多边形面片及其特征点对应关系
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence
import numpy as np


class FaceState(Enum):
    """面片跟踪状态"""
    UNTRACKED = 'untracked'
    TRACKED_OK = 'tracked_ok'
    TRACKED_LOW_CONFIDENCE = 'tracked_low_confidence'   # 仍在跟踪, 但点数不足以参与优化


@dataclass
class FeatureCorrespondence:
    """特征点对应: 初始化时的参考位置与当前位置(像素)"""
    reference: np.ndarray
    current: np.ndarray


@dataclass
class Face:
    """平面多边形面片"""
    index: int
    points: np.ndarray                          # 物体坐标系下的有序顶点 [N, 3]
    normal: Optional[np.ndarray] = None         # 物体坐标系下的单位外法向
    min_points: int = 4                         # 参与优化所需的最少对应点数
    is_tracked: bool = False
    is_visible: bool = False
    correspondences: Dict[int, FeatureCorrespondence] = field(default_factory=dict)
    plane_normal_c0: Optional[np.ndarray] = None    # 初始化相机坐标系下的平面法向
    plane_distance_c0: float = 0.0                  # 满足 n0·X = d0

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        if len(self.points) < 3:
            raise ValueError(f"Face {self.index} needs at least 3 points, got {len(self.points)}")

        if self.normal is None:
            self.normal = self.polygon_normal(self.points)
        else:
            normal = np.asarray(self.normal, dtype=np.float64).reshape(3)
            norm = np.linalg.norm(normal)
            if norm == 0:
                raise ValueError(f"Face {self.index} normal must be non-zero")
            self.normal = normal / norm

    @staticmethod
    def polygon_normal(points: np.ndarray) -> np.ndarray:
        """由前三个顶点计算右手法向"""
        normal = np.cross(points[1] - points[0], points[2] - points[0])
        norm = np.linalg.norm(normal)
        if norm == 0:
            raise ValueError("First three face points are collinear")
        return normal / norm

    @property
    def centroid(self) -> np.ndarray:
        return self.points.mean(axis=0)

    @property
    def nb_points_cur(self) -> int:
        """当前对应点数量, 决定该面片在残差系统中的行数"""
        return len(self.correspondences)

    def has_enough_points(self) -> bool:
        return self.nb_points_cur >= self.min_points

    @property
    def state(self) -> FaceState:
        if not self.is_tracked:
            return FaceState.UNTRACKED
        if self.has_enough_points():
            return FaceState.TRACKED_OK
        return FaceState.TRACKED_LOW_CONFIDENCE

    def is_used(self) -> bool:
        """是否参与本帧位姿优化"""
        return self.state == FaceState.TRACKED_OK

    def point_ids(self) -> Sequence[int]:
        return tuple(self.correspondences.keys())

    def reset(self):
        """停止跟踪并清空对应关系"""
        self.is_tracked = False
        self.correspondences = {}
        self.plane_normal_c0 = None
        self.plane_distance_c0 = 0.0
