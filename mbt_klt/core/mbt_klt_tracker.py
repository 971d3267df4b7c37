"""
基于模型的KLT跟踪器
逐帧管理面片可见性、特征点生命周期和位姿优化
"""

import logging
import time
import numpy as np
from typing import Dict, Any, Optional, List, Sequence, Tuple

from .base_tracker import BaseTracker
from .exceptions import ConfigurationError, InsufficientDataError, MbtTrackingError
from ..frontend.face_observation import FaceObservationModel
from ..frontend.klt_tracker import KltPointTracker
from ..frontend.point_tracker import PointTracker
from ..model.face import Face
from ..solvers.geometry_utils import invert_pose
from ..solvers.pose_refiner import PoseRefiner, RefinementResult
from ..solvers.robust_estimator import RobustEstimator
from ..utils.camera import CameraParameters
from ..utils.config_manager import ConfigManager
from ..utils.data_converter import ImageProcessor
from ..utils.data_structures import TrackingResult

logger = logging.getLogger(__name__)


class MbtKltTracker(BaseTracker):
    """基于平面面片模型和KLT特征点的位姿跟踪器

    位姿关系: cMo = ctTc0 * c0Mo, 其中 c0Mo 为最近一次(重)初始化时的位姿,
    ctTc0 为此后累积的增量变换.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 point_tracker: Optional[PointTracker] = None):
        super().__init__(ConfigManager.with_defaults(config or {}))

        self._owns_point_tracker = point_tracker is None
        self.point_tracker = point_tracker
        self._klt_config: Optional[Dict[str, Any]] = None

        # 模型与相机
        self.faces: List[Face] = []
        self.camera: Optional[CameraParameters] = None
        self.observation: Optional[FaceObservationModel] = None
        self.camera_initialised = False
        self.model_initialised = False
        self.initialised = False

        # 位姿
        self.c0_M_o = np.eye(4)
        self.ct_T_c0 = np.eye(4)

        # 状态维护
        self.frame_id = 0
        self.last_result: Optional[TrackingResult] = None

        # 性能统计
        self.tracking_stats = {
            'pre_tracking': [],
            'vvs': [],
            'post_tracking': [],
            'total_time': []
        }

        self._apply_config(self.config)

    # ------------------------------------------------------------------
    # 配置
    # ------------------------------------------------------------------

    def _apply_config(self, config: Dict[str, Any]):
        tracker_config = config.get('tracker', {})
        self.mask_border = tracker_config.get('mask_border', 10)
        self.threshold_outlier = tracker_config.get('threshold_outlier', 0.5)
        self.angle_appear = np.radians(tracker_config.get('angle_appear', 65.0))
        self.angle_disappear = np.radians(tracker_config.get('angle_disappear', 75.0))
        self.min_points_per_face = tracker_config.get('min_points_per_face', 4)
        self.reinit_min_points = tracker_config.get('reinit_min_points', 10)
        self.quality_min_points = tracker_config.get('quality_min_points', 10)

        if self.angle_appear > self.angle_disappear:
            raise ValueError("angle_appear must not exceed angle_disappear")

        self.robust = RobustEstimator(config.get('robust', {}))
        self.refiner = PoseRefiner(config.get('vvs', {}), self.robust)

        # 仅在KLT参数变化时重建特征跟踪器, 重建会丢弃全部在跟踪的点
        klt_config = dict(config.get('klt', {}))
        if self._owns_point_tracker and klt_config != self._klt_config:
            self.point_tracker = KltPointTracker(klt_config)
            self._klt_config = klt_config
            if self.initialised:
                logger.warning("KLT settings changed, call init() again before tracking")
                self.initialised = False

        for face in self.faces:
            face.min_points = self.min_points_per_face

        if 'camera' in config:
            self.set_camera_parameters(CameraParameters.from_config(config['camera']))
        elif self.camera is not None:
            self.set_camera_parameters(self.camera)

    def load_config(self, config_path: str):
        """加载YAML配置文件并更新相机与跟踪参数"""
        loaded = ConfigManager.load_config(config_path)
        if not ConfigManager.validate_config(ConfigManager.with_defaults(loaded)):
            logger.warning(f"Configuration {config_path} is incomplete, using defaults where missing")
        self.config = ConfigManager.merge_configs(self.config, loaded)
        self._apply_config(self.config)
        logger.info(f"Loaded tracker configuration from {config_path}")

    def set_camera_parameters(self, camera: CameraParameters):
        self.camera = camera
        self.observation = FaceObservationModel(camera, {
            'angle_appear': np.degrees(self.angle_appear),
            'angle_disappear': np.degrees(self.angle_disappear),
            'mask_border': self.mask_border,
        })
        self.camera_initialised = True

    def load_model(self, faces: Sequence[Face]):
        """设置物体模型的全部面片"""
        indices = [face.index for face in faces]
        if len(set(indices)) != len(indices):
            raise ValueError(f"Face indices must be unique, got {indices}")
        self.faces = list(faces)
        for face in self.faces:
            face.min_points = self.min_points_per_face
            face.reset()
            face.is_visible = False
        self.model_initialised = len(self.faces) > 0
        self.initialised = False

    def init_face_from_corners(self, corners: np.ndarray, index: Optional[int] = None) -> Face:
        """由物体坐标系下的顶点添加一个面片"""
        if index is None:
            index = max((face.index for face in self.faces), default=-1) + 1
        if any(face.index == index for face in self.faces):
            raise ValueError(f"Face index {index} already exists")
        face = Face(index=index, points=corners, min_points=self.min_points_per_face)
        self.faces.append(face)
        self.model_initialised = True
        return face

    def _check_configuration(self):
        if not self.model_initialised:
            raise ConfigurationError("model not initialised")
        if not self.camera_initialised:
            raise ConfigurationError("camera not initialised")

    # ------------------------------------------------------------------
    # 公共接口
    # ------------------------------------------------------------------

    def init(self, image: np.ndarray):
        """以当前位姿为锚点初始化所有可见面片的特征点"""
        self._check_configuration()
        gray = ImageProcessor.to_gray(image)
        self._reinitialise(gray)
        self.initialised = True

    def set_pose(self, pose: np.ndarray):
        """外部覆盖当前位姿, 已初始化时保持锚点不变并重新计算增量位姿"""
        super().set_pose(pose)
        if self.initialised:
            self.ct_T_c0 = self.c_M_o @ invert_pose(self.c0_M_o)

    def track(self, image: np.ndarray) -> np.ndarray:
        """
        跟踪一帧

        Args:
            image: 当前帧图像

        Returns:
            pose: 4x4位姿矩阵 cMo

        Raises:
            ConfigurationError: 相机/模型未配置或未初始化
            InsufficientDataError: 对应点不足
            NumericDegeneracyError: 面片配置无法约束位姿
        """
        self._check_configuration()
        if not self.initialised:
            raise ConfigurationError("tracker not initialised, call init() first")

        start_time = time.time()
        self.frame_id += 1
        gray = ImageProcessor.to_gray(image)

        nb_infos, nb_faces_used = self._pre_tracking(gray)
        pre_time = time.time()

        try:
            if nb_faces_used == 0 or nb_infos < self.refiner.min_total_points:
                raise InsufficientDataError(
                    f"not enough correspondences: {nb_infos} points on {nb_faces_used} faces",
                    nb_points=nb_infos, nb_faces=nb_faces_used
                )
            result = self.refiner.compute_vvs(self.faces, self.observation, self.ct_T_c0, self.c0_M_o)
        except MbtTrackingError as e:
            logger.error(f"Tracking failed at frame {self.frame_id}: {e}")
            raise
        vvs_time = time.time()

        self.ct_T_c0 = result.ct_T_c0
        self.c_M_o = result.pose

        nb_outliers, reinitialise = self._post_tracking(gray, result)
        if reinitialise:
            logger.info(f"Re-initialising features at frame {self.frame_id}")
            self._reinitialise(gray)
        end_time = time.time()

        self.tracking_stats['pre_tracking'].append((pre_time - start_time) * 1000)
        self.tracking_stats['vvs'].append((vvs_time - pre_time) * 1000)
        self.tracking_stats['post_tracking'].append((end_time - vvs_time) * 1000)
        self.tracking_stats['total_time'].append((end_time - start_time) * 1000)

        self.last_result = TrackingResult(
            frame_id=self.frame_id,
            pose=self.get_pose(),
            nb_points=result.nb_points,
            nb_faces_used=result.nb_faces_used,
            nb_outliers=nb_outliers,
            iterations=result.iterations,
            residual_norm=result.residual_norm,
            converged=result.converged,
            reinitialised=reinitialise,
            processing_time=(end_time - start_time) * 1000,
            weights=result.weights
        )
        return self.get_pose()

    def test_tracking(self):
        """跟踪质量检查, 跟踪面片上的点数过少时抛出异常"""
        nb_total_points = sum(face.nb_points_cur for face in self.faces if face.is_tracked)
        if nb_total_points < self.quality_min_points:
            raise InsufficientDataError(
                f"test tracking failed: {nb_total_points} points left "
                f"(minimum {self.quality_min_points})",
                nb_points=nb_total_points
            )

    # ------------------------------------------------------------------
    # 逐帧流程
    # ------------------------------------------------------------------

    def _pre_tracking(self, gray: np.ndarray) -> Tuple[int, int]:
        """跟踪2D点并更新各面片的对应关系"""
        tracked_points = self.point_tracker.track(gray)

        nb_infos = 0
        nb_faces_used = 0
        for face in self.faces:
            if face.is_tracked:
                self.observation.update_current(face, tracked_points)
                if face.has_enough_points():
                    nb_infos += face.nb_points_cur
                    nb_faces_used += 1

        logger.debug(f"Frame {self.frame_id}: {len(tracked_points)} tracked points, "
                     f"{nb_infos} used on {nb_faces_used} faces")
        return nb_infos, nb_faces_used

    def _post_tracking(self, gray: np.ndarray, result: RefinementResult) -> Tuple[int, bool]:
        """
        剔除外点并更新可见性

        Returns:
            (剔除点数, 是否需要重新初始化)
        """
        nb_outliers = 0
        for face in self.faces:
            if face.index in result.face_slices:
                point_ids, weights = result.face_weights(face.index)
                nb_outliers += self.observation.remove_outliers(
                    face, point_ids, weights, self.threshold_outlier
                )

        reinitialise = False
        for face in self.faces:
            was_visible = face.is_visible
            if self.observation.update_visibility(face, self.c_M_o):
                logger.debug(f"Face {face.index} became visible")

            if was_visible and not face.is_visible:
                if face.is_tracked:
                    logger.warning(f"Face {face.index} disappeared, stop tracking it")
                face.reset()
            elif face.is_visible and not face.is_tracked:
                roi = self.observation.project_face(face, self.c_M_o)
                if self.observation.roi_inside_image(roi, gray.shape):
                    reinitialise = True

        nb_total_points = sum(face.nb_points_cur for face in self.faces if face.is_tracked)
        if nb_total_points < self.reinit_min_points:
            logger.debug(f"Only {nb_total_points} points left, re-initialisation required")
            reinitialise = True

        return nb_outliers, reinitialise

    def _reinitialise(self, gray: np.ndarray):
        """以当前位姿为新锚点, 在可见面片内重新检测特征点"""
        self.c0_M_o = self.c_M_o.copy()
        self.ct_T_c0 = np.eye(4)

        mask = np.zeros(gray.shape[:2], dtype=np.uint8)
        rois = {}
        for i, face in enumerate(self.faces):
            face.is_visible = self.observation.is_visible(face, self.c0_M_o, self.angle_appear)
            if face.is_visible:
                roi = self.observation.project_face(face, self.c0_M_o)
                rois[face.index] = roi
                self.observation.update_mask(mask, roi, max(255 - i * 15, 1))

        features = self.point_tracker.initialize(gray, mask)

        nb_tracked_faces = 0
        for face in self.faces:
            roi = rois.get(face.index)
            if roi is not None and self.observation.roi_inside_image(roi, gray.shape):
                self.observation.init_face(face, features, roi, self.c0_M_o)
                nb_tracked_faces += 1
            else:
                face.reset()

        logger.info(f"Initialised {nb_tracked_faces} faces with {len(features)} features")

    def get_performance_stats(self) -> Dict[str, Any]:
        """获取性能统计信息"""
        stats = {}

        for key, times in self.tracking_stats.items():
            if times:
                stats[key] = {
                    'mean': float(np.mean(times)),
                    'std': float(np.std(times)),
                    'min': float(np.min(times)),
                    'max': float(np.max(times)),
                    'count': len(times)
                }

        return stats
