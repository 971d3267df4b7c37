"""
位姿优化器
基于虚拟视觉伺服(VVS)的迭代重加权最小二乘位姿优化
"""

import logging
import numpy as np
from dataclasses import dataclass
from typing import Dict, Any, Optional, List, Tuple

from .geometry_utils import exponential_map, invert_pose
from .robust_estimator import RobustEstimator
from ..core.exceptions import InsufficientDataError, NumericDegeneracyError
from ..model.face import Face

logger = logging.getLogger(__name__)


@dataclass
class RefinementResult:
    """VVS优化结果"""
    pose: np.ndarray                # 优化后的 cMo
    ct_T_c0: np.ndarray             # 自初始化以来的增量位姿
    weights: np.ndarray             # 最后一次迭代的鲁棒权重 [2N]
    face_slices: Dict[int, Tuple[int, int, Tuple[int, ...]]]  # 面片索引 -> (起始行, 结束行, 点id顺序)
    nb_points: int
    nb_faces_used: int
    iterations: int
    residual_norm: float
    converged: bool

    def face_weights(self, face_index: int) -> Tuple[Tuple[int, ...], np.ndarray]:
        """取某个面片的 (点id, 权重)"""
        start, stop, ids = self.face_slices[face_index]
        return ids, self.weights[start:stop]


class PoseRefiner:
    """VVS位姿优化器

    每次迭代: 构建残差系统 -> M估计权重 -> 加权法方程 -> 伪逆求速度旋量
    -> 指数映射左乘更新 ctTc0.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 robust_estimator: Optional[RobustEstimator] = None):
        config = config or {}
        self.gain = config.get('lambda', 0.8)
        self.max_iter = config.get('max_iter', 200)
        self.convergence_tolerance = config.get('convergence_tolerance', 1e-8)
        self.pinv_rcond = config.get('pinv_rcond', 1e-16)
        self.damping = config.get('damping', 0.0)
        self.degeneracy_rcond = config.get('degeneracy_rcond', 1e-10)
        self.compute_interaction = config.get('compute_interaction', True)
        self.min_total_points = config.get('min_total_points', 4)

        self.robust = robust_estimator if robust_estimator is not None else RobustEstimator()

        # 跨迭代、跨帧复用的缓冲区
        self._capacity = 0
        self._residual = np.empty(0)
        self._weighted_residual = np.empty(0)
        self._weights = np.empty(0)
        self._jacobian = np.empty((0, 6))
        self._weighted_jacobian = np.empty((0, 6))

    def _ensure_capacity(self, rows: int):
        if rows <= self._capacity:
            return
        self._capacity = max(rows, 2 * self._capacity)
        self._residual = np.empty(self._capacity)
        self._weighted_residual = np.empty(self._capacity)
        self._weights = np.empty(self._capacity)
        self._jacobian = np.zeros((self._capacity, 6))
        self._weighted_jacobian = np.empty((self._capacity, 6))

    def _check_rank(self, JTJ: np.ndarray):
        """法方程秩检查"""
        singular_values = np.linalg.svd(JTJ, compute_uv=False)
        if not np.all(np.isfinite(singular_values)) or singular_values[0] <= 0:
            raise NumericDegeneracyError("Normal equations are empty or not finite", rank=0)
        rank = int(np.sum(singular_values > self.degeneracy_rcond * singular_values[0]))
        if rank < 6:
            raise NumericDegeneracyError(
                f"Normal equations rank {rank} < 6, face configuration does not constrain the pose",
                rank=rank
            )

    def compute_vvs(self, faces: List[Face], observation_model, ct_T_c0: np.ndarray,
                    c0_M_o: np.ndarray, threshold: Optional[float] = None) -> RefinementResult:
        """
        执行VVS优化

        Args:
            faces: 全部面片, 只使用 is_tracked 且点数足够的面片
            observation_model: FaceObservationModel
            ct_T_c0: 起始增量位姿(不会被修改)
            c0_M_o: 初始化时刻的位姿
            threshold: M估计尺度下限(归一化坐标), 缺省由相机焦距换算

        Returns:
            RefinementResult
        """
        used_faces = [face for face in faces if face.is_used()]
        nb_points = sum(face.nb_points_cur for face in used_faces)
        if not used_faces or nb_points < self.min_total_points:
            raise InsufficientDataError(
                f"Not enough data: {nb_points} points on {len(used_faces)} faces",
                nb_points=nb_points, nb_faces=len(used_faces)
            )

        rows = 2 * nb_points
        self._ensure_capacity(rows)
        residual = self._residual[:rows]
        weighted_residual = self._weighted_residual[:rows]
        weights = self._weights[:rows]
        jacobian = self._jacobian[:rows]
        weighted_jacobian = self._weighted_jacobian[:rows]

        # 本帧内对应关系固定, 预先导出归一化坐标
        observations = []
        face_slices = {}
        shift = 0
        for face in used_faces:
            ids, reference_xy, current_xy = observation_model.observation_arrays(face)
            stop = shift + 2 * len(ids)
            observations.append((face, reference_xy, current_xy, shift, stop))
            face_slices[face.index] = (shift, stop, ids)
            shift = stop

        if threshold is None:
            threshold = self.robust.threshold_for_focal(observation_model.camera.px)

        ct_T_c0 = np.array(ct_T_c0, dtype=np.float64)
        norm_res = 0.0
        norm_prev = 0.0
        iteration = 0
        converged = False

        while iteration < self.max_iter:
            build_jacobian = iteration == 0 or self.compute_interaction

            for face, reference_xy, current_xy, start, stop in observations:
                H = observation_model.compute_homography(face, ct_T_c0)
                observation_model.compute_interaction_and_residual(
                    face, ct_T_c0, H, reference_xy, current_xy,
                    residual[start:stop],
                    jacobian[start:stop] if build_jacobian else None
                )

            if not np.all(np.isfinite(residual)) or not np.all(np.isfinite(jacobian)):
                raise NumericDegeneracyError("Non-finite residual or interaction matrix")

            self.robust.compute_weights(residual, iteration, threshold, out=weights)

            np.multiply(residual, weights, out=weighted_residual)
            norm_prev = norm_res
            norm_res = float(np.linalg.norm(weighted_residual))

            np.multiply(jacobian, weights[:, None], out=weighted_jacobian)
            JTJ = weighted_jacobian.T @ weighted_jacobian
            JTR = weighted_jacobian.T @ weighted_residual
            self._check_rank(JTJ)

            if self.damping > 0:
                JTJ = JTJ + self.damping * np.eye(6)
            velocity = -self.gain * (np.linalg.pinv(JTJ, rcond=self.pinv_rcond) @ JTR)

            ct_T_c0 = invert_pose(exponential_map(velocity)) @ ct_T_c0
            iteration += 1

            if iteration > 1 and abs(norm_res - norm_prev) < self.convergence_tolerance:
                converged = True
                break

        logger.debug(f"VVS finished after {iteration} iterations, "
                     f"weighted residual {norm_res:.3e}, converged={converged}")

        return RefinementResult(
            pose=ct_T_c0 @ c0_M_o,
            ct_T_c0=ct_T_c0,
            weights=weights.copy(),
            face_slices=face_slices,
            nb_points=nb_points,
            nb_faces_used=len(used_faces),
            iterations=iteration,
            residual_norm=norm_res,
            converged=converged
        )
