"""
几何工具函数
包含刚体变换、投影和指数映射等3D几何计算
"""

import cv2
import numpy as np
from typing import Tuple


def make_pose(R: np.ndarray, T: np.ndarray) -> np.ndarray:
    """由旋转矩阵和平移向量构造4x4齐次变换"""
    pose = np.eye(4)
    pose[:3, :3] = np.asarray(R, dtype=np.float64)
    pose[:3, 3] = np.asarray(T, dtype=np.float64).reshape(3)
    return pose


def split_pose(pose: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """拆分4x4齐次变换为 (R, T)"""
    return pose[:3, :3], pose[:3, 3]


def invert_pose(pose: np.ndarray) -> np.ndarray:
    """刚体变换求逆, 利用旋转矩阵正交性"""
    R, T = split_pose(pose)
    inv = np.eye(4)
    inv[:3, :3] = R.T
    inv[:3, 3] = -R.T @ T
    return inv


def transform_points(points: np.ndarray, R: np.ndarray, T: np.ndarray) -> np.ndarray:
    """
    使用旋转和平移变换3D点

    Args:
        points: 输入3D点 [N, 3]
        R: 旋转矩阵 [3, 3]
        T: 平移向量 [3]

    Returns:
        transformed_points: 变换后的3D点 [N, 3]
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return points @ np.asarray(R).T + np.asarray(T).reshape(1, 3)


def project_points(points_3d: np.ndarray, intrinsics: np.ndarray) -> np.ndarray:
    """
    将相机坐标系下的3D点投影到图像平面

    Args:
        points_3d: 3D点 [N, 3]
        intrinsics: 相机内参 [3, 3]

    Returns:
        points_2d: 投影的2D点 [N, 2]
    """
    points_3d = np.asarray(points_3d, dtype=np.float64).reshape(-1, 3)
    homogeneous = points_3d @ np.asarray(intrinsics, dtype=np.float64).T
    return homogeneous[:, :2] / homogeneous[:, 2:3]


def compute_reprojection_error(points_3d: np.ndarray, points_2d: np.ndarray,
                               R: np.ndarray, T: np.ndarray, intrinsics: np.ndarray) -> float:
    """计算平均重投影误差(像素)"""
    projected = project_points(transform_points(points_3d, R, T), intrinsics)
    errors = np.linalg.norm(np.asarray(points_2d, dtype=np.float64).reshape(-1, 2) - projected, axis=1)
    return float(np.mean(errors)) if len(errors) else 0.0


def skew(w: np.ndarray) -> np.ndarray:
    """向量的反对称矩阵"""
    return np.array([[0.0, -w[2], w[1]],
                     [w[2], 0.0, -w[0]],
                     [-w[1], w[0], 0.0]])


def rotation_about_axis(axis: np.ndarray, angle: float) -> np.ndarray:
    """绕给定轴旋转angle弧度的旋转矩阵"""
    axis = np.asarray(axis, dtype=np.float64).reshape(3)
    axis = axis / np.linalg.norm(axis)
    R, _ = cv2.Rodrigues((axis * angle).reshape(3, 1))
    return R


def rotation_angle(R: np.ndarray) -> float:
    """旋转矩阵对应的旋转角(弧度)"""
    cos_theta = (np.trace(R[:3, :3]) - 1.0) / 2.0
    return float(np.arccos(np.clip(cos_theta, -1.0, 1.0)))


def exponential_map(v: np.ndarray, dt: float = 1.0) -> np.ndarray:
    """
    SE(3)指数映射: 把速度旋量 (v, w) 在dt时间内积分为刚体变换

    Args:
        v: 6维速度 [vx, vy, vz, wx, wy, wz]
        dt: 积分时间

    Returns:
        4x4齐次变换
    """
    v = np.asarray(v, dtype=np.float64).reshape(6) * dt
    u = v[3:]
    theta = np.linalg.norm(u)

    R, _ = cv2.Rodrigues(u.reshape(3, 1))

    K = skew(u)
    if theta < 1e-8:
        # 二阶泰勒展开
        V = np.eye(3) + 0.5 * K + K @ K / 6.0
    else:
        V = (np.eye(3)
             + (1.0 - np.cos(theta)) / theta ** 2 * K
             + (theta - np.sin(theta)) / theta ** 3 * K @ K)

    return make_pose(R, V @ v[:3])
