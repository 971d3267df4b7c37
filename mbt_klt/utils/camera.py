"""
相机模型
针孔相机内参, 像素坐标与归一化坐标之间的转换
"""

from dataclasses import dataclass
from typing import Dict, Any
import numpy as np


@dataclass
class CameraParameters:
    """无畸变针孔相机参数"""
    px: float    # x方向焦距(像素)
    py: float    # y方向焦距(像素)
    u0: float    # 主点u
    v0: float    # 主点v

    def __post_init__(self):
        if self.px <= 0 or self.py <= 0:
            raise ValueError(f"Focal lengths must be positive, got px={self.px}, py={self.py}")

    @classmethod
    def from_matrix(cls, K: np.ndarray) -> 'CameraParameters':
        """从3x3内参矩阵构造"""
        K = np.asarray(K, dtype=np.float64)
        if K.shape != (3, 3):
            raise ValueError(f"Camera matrix must be 3x3, got {K.shape}")
        return cls(px=float(K[0, 0]), py=float(K[1, 1]), u0=float(K[0, 2]), v0=float(K[1, 2]))

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'CameraParameters':
        """从配置字典构造"""
        missing = [key for key in ('px', 'py', 'u0', 'v0') if key not in config]
        if missing:
            raise ValueError(f"Camera configuration is missing {missing}")
        return cls(px=float(config['px']), py=float(config['py']),
                   u0=float(config['u0']), v0=float(config['v0']))

    @property
    def matrix(self) -> np.ndarray:
        """3x3内参矩阵"""
        return np.array([[self.px, 0.0, self.u0],
                         [0.0, self.py, self.v0],
                         [0.0, 0.0, 1.0]])

    def pixel_to_meter(self, uv: np.ndarray) -> np.ndarray:
        """
        像素坐标转归一化坐标

        Args:
            uv: 像素坐标 [N, 2] 或 [2]

        Returns:
            xy: 归一化坐标, 形状与输入相同
        """
        uv = np.asarray(uv, dtype=np.float64)
        xy = np.empty_like(uv)
        xy[..., 0] = (uv[..., 0] - self.u0) / self.px
        xy[..., 1] = (uv[..., 1] - self.v0) / self.py
        return xy

    def meter_to_pixel(self, xy: np.ndarray) -> np.ndarray:
        """归一化坐标转像素坐标"""
        xy = np.asarray(xy, dtype=np.float64)
        uv = np.empty_like(xy)
        uv[..., 0] = xy[..., 0] * self.px + self.u0
        uv[..., 1] = xy[..., 1] * self.py + self.v0
        return uv

    def project(self, points_c: np.ndarray) -> np.ndarray:
        """相机坐标系下的3D点投影到像素平面 [N, 3] -> [N, 2]"""
        points_c = np.asarray(points_c, dtype=np.float64).reshape(-1, 3)
        xy = points_c[:, :2] / points_c[:, 2:3]
        return self.meter_to_pixel(xy)
