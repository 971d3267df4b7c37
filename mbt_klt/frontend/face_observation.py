"""
面片观测模型
单应性预测、残差与交互矩阵计算、外点剔除和可见性判断
"""

import logging
import cv2
import numpy as np
from typing import Dict, Any, Optional, Sequence, Tuple

from ..model.face import Face, FeatureCorrespondence
from ..utils.camera import CameraParameters
from ..solvers.geometry_utils import split_pose, transform_points

logger = logging.getLogger(__name__)


class FaceObservationModel:
    """平面面片观测模型

    面片在初始化相机坐标系c0下满足 n0·X = d0, 当前相机与c0之间的变换为
    ctTc0 = [R | t] 时, 参考图像点经单应 H = R + t n0^T / d0 映射到预测位置.
    """

    def __init__(self, camera: CameraParameters, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.camera = camera
        self.angle_appear = np.radians(config.get('angle_appear', 65.0))
        self.angle_disappear = np.radians(config.get('angle_disappear', 75.0))
        self.mask_border = int(config.get('mask_border', 10))

        if self.angle_appear > self.angle_disappear:
            raise ValueError(
                f"angle_appear ({np.degrees(self.angle_appear):.1f}) must not exceed "
                f"angle_disappear ({np.degrees(self.angle_disappear):.1f})"
            )

    # ------------------------------------------------------------------
    # 图像平面
    # ------------------------------------------------------------------

    def project_face(self, face: Face, c_M_o: np.ndarray) -> np.ndarray:
        """面片顶点投影到像素平面 [K, 2]"""
        R, T = split_pose(c_M_o)
        return self.camera.project(transform_points(face.points, R, T))

    @staticmethod
    def roi_inside_image(roi: np.ndarray, image_shape: Tuple[int, ...]) -> bool:
        """投影多边形是否完全位于图像内"""
        height, width = image_shape[:2]
        roi = np.asarray(roi)
        return bool(np.all(np.isfinite(roi))
                    and np.all(roi[:, 0] >= 0) and np.all(roi[:, 0] < width)
                    and np.all(roi[:, 1] >= 0) and np.all(roi[:, 1] < height))

    def update_mask(self, mask: np.ndarray, roi: np.ndarray, value: int,
                    border: Optional[int] = None):
        """把面片多边形(内缩border像素)写入检测掩码"""
        border = self.mask_border if border is None else border
        face_mask = np.zeros_like(mask)
        cv2.fillPoly(face_mask, [np.round(roi).astype(np.int32).reshape(-1, 1, 2)], 255)
        if border > 0:
            kernel = np.ones((2 * border + 1, 2 * border + 1), np.uint8)
            face_mask = cv2.erode(face_mask, kernel)
        mask[face_mask > 0] = value

    # ------------------------------------------------------------------
    # 可见性
    # ------------------------------------------------------------------

    def compute_angle(self, face: Face, c_M_o: np.ndarray) -> float:
        """面片法向与面片中心指向相机光心方向的夹角(弧度)"""
        R, T = split_pose(c_M_o)
        centroid_c = R @ face.centroid + T
        normal_c = R @ face.normal
        view = -centroid_c
        cos_angle = np.dot(view, normal_c) / np.linalg.norm(view)
        return float(np.arccos(np.clip(cos_angle, -1.0, 1.0)))

    def is_visible(self, face: Face, c_M_o: np.ndarray, angle: float) -> bool:
        R, T = split_pose(c_M_o)
        if (R @ face.centroid + T)[2] <= 0:
            return False
        return self.compute_angle(face, c_M_o) < angle

    def update_visibility(self, face: Face, c_M_o: np.ndarray) -> bool:
        """
        带滞回的可见性更新

        Returns:
            面片是否由不可见变为可见
        """
        angle = self.angle_disappear if face.is_visible else self.angle_appear
        visible = self.is_visible(face, c_M_o, angle)
        appeared = visible and not face.is_visible
        face.is_visible = visible
        return appeared

    # ------------------------------------------------------------------
    # 对应关系
    # ------------------------------------------------------------------

    def init_face(self, face: Face, features: Dict[int, Sequence[float]],
                  roi: np.ndarray, c0_M_o: np.ndarray) -> int:
        """
        用新检测的特征点初始化面片

        Args:
            face: 面片
            features: 跟踪器返回的 {id: (u, v)}
            roi: 面片投影多边形(像素) [K, 2]
            c0_M_o: 初始化时刻的位姿

        Returns:
            面片内的特征点数量
        """
        contour = np.asarray(roi, dtype=np.float32).reshape(-1, 1, 2)
        face.correspondences = {}
        for point_id, (u, v) in features.items():
            if cv2.pointPolygonTest(contour, (float(u), float(v)), False) >= 0:
                position = np.array([u, v], dtype=np.float64)
                face.correspondences[point_id] = FeatureCorrespondence(
                    reference=position, current=position.copy()
                )

        R0, T0 = split_pose(c0_M_o)
        face.plane_normal_c0 = R0 @ face.normal
        face.plane_distance_c0 = float(np.dot(face.plane_normal_c0, R0 @ face.points[0] + T0))
        face.is_tracked = True
        return face.nb_points_cur

    def update_current(self, face: Face, tracked_points: Dict[int, Sequence[float]]) -> int:
        """用跟踪器输出更新当前位置, 未返回的点视为丢失"""
        lost = [point_id for point_id in face.correspondences if point_id not in tracked_points]
        for point_id in lost:
            del face.correspondences[point_id]
        for point_id, correspondence in face.correspondences.items():
            correspondence.current = np.asarray(tracked_points[point_id], dtype=np.float64)
        return face.nb_points_cur

    def observation_arrays(self, face: Face) -> Tuple[Tuple[int, ...], np.ndarray, np.ndarray]:
        """按对应关系顺序导出 (ids, 参考归一化坐标, 当前归一化坐标)"""
        ids = face.point_ids()
        if not ids:
            return ids, np.empty((0, 2)), np.empty((0, 2))
        reference = np.array([c.reference for c in face.correspondences.values()])
        current = np.array([c.current for c in face.correspondences.values()])
        return ids, self.camera.pixel_to_meter(reference), self.camera.pixel_to_meter(current)

    def remove_outliers(self, face: Face, point_ids: Sequence[int], weights: np.ndarray,
                        threshold: float) -> int:
        """
        剔除最终权重低于阈值的点, 按id匹配, 重复调用结果不变

        Args:
            point_ids: 与weights对齐的点id顺序
            weights: [2 * len(point_ids)]

        Returns:
            剔除的点数
        """
        removed = 0
        for k, point_id in enumerate(point_ids):
            if point_id not in face.correspondences:
                continue
            if weights[2 * k] < threshold or weights[2 * k + 1] < threshold:
                del face.correspondences[point_id]
                removed += 1
        if removed:
            logger.debug(f"Face {face.index}: removed {removed} outliers, {face.nb_points_cur} left")
        return removed

    # ------------------------------------------------------------------
    # 残差与交互矩阵
    # ------------------------------------------------------------------

    def compute_homography(self, face: Face, ct_T_c0: np.ndarray) -> np.ndarray:
        """由增量位姿计算归一化坐标下的单应矩阵"""
        R, T = split_pose(ct_T_c0)
        return R + np.outer(T, face.plane_normal_c0) / face.plane_distance_c0

    def compute_interaction_and_residual(self, face: Face, ct_T_c0: np.ndarray, H: np.ndarray,
                                         reference_xy: np.ndarray, current_xy: np.ndarray,
                                         residual_out: np.ndarray,
                                         jacobian_out: Optional[np.ndarray] = None):
        """
        计算残差(预测 - 观测)和点特征交互矩阵

        Args:
            reference_xy: 参考归一化坐标 [n, 2]
            current_xy: 当前观测归一化坐标 [n, 2]
            residual_out: 残差输出 [2n]
            jacobian_out: 交互矩阵输出 [2n, 6], 为None时跳过
        """
        n = reference_xy.shape[0]
        homogeneous = np.empty((n, 3))
        homogeneous[:, :2] = reference_xy
        homogeneous[:, 2] = 1.0
        predicted = homogeneous @ H.T
        x = predicted[:, 0] / predicted[:, 2]
        y = predicted[:, 1] / predicted[:, 2]

        residual_out[0::2] = x - current_xy[:, 0]
        residual_out[1::2] = y - current_xy[:, 1]

        if jacobian_out is None:
            return

        # 当前假设下的平面, 用于计算 1/Z
        R, T = split_pose(ct_T_c0)
        normal_c = R @ face.plane_normal_c0
        distance_c = face.plane_distance_c0 + np.dot(normal_c, T)
        inv_z = (normal_c[0] * x + normal_c[1] * y + normal_c[2]) / distance_c

        jx = jacobian_out[0::2]
        jx[:, 0] = -inv_z
        jx[:, 1] = 0.0
        jx[:, 2] = x * inv_z
        jx[:, 3] = x * y
        jx[:, 4] = -(1.0 + x * x)
        jx[:, 5] = y

        jy = jacobian_out[1::2]
        jy[:, 0] = 0.0
        jy[:, 1] = -inv_z
        jy[:, 2] = y * inv_z
        jy[:, 3] = 1.0 + y * y
        jy[:, 4] = -x * y
        jy[:, 5] = -x
