"""
KLT点跟踪器
基于OpenCV角点检测和金字塔Lucas-Kanade光流
"""

import logging
import cv2
import numpy as np
from typing import Dict, Any, Optional

from .point_tracker import PointTracker, TrackedPoints
from ..utils.data_converter import ImageProcessor

logger = logging.getLogger(__name__)


class KltPointTracker(PointTracker):
    """OpenCV KLT跟踪器, 点id为递增计数"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.max_features = self.config.get('max_features', 10000)
        self.window_size = self.config.get('window_size', 5)
        self.quality = self.config.get('quality', 0.01)
        self.min_distance = self.config.get('min_distance', 5)
        self.harris_k = self.config.get('harris_k', 0.01)
        self.block_size = self.config.get('block_size', 3)
        self.pyramid_levels = self.config.get('pyramid_levels', 3)
        self.use_harris = self.config.get('use_harris', True)

        self.lk_criteria = (cv2.TERM_CRITERIA_EPS | cv2.TERM_CRITERIA_COUNT, 20, 0.03)

        # 跟踪状态
        self._prev_image = None
        self._points = np.empty((0, 1, 2), dtype=np.float32)
        self._ids = np.empty(0, dtype=np.int64)
        self._next_id = 0

    def get_nb_features(self) -> int:
        return len(self._ids)

    def _as_dict(self) -> TrackedPoints:
        return {int(point_id): (float(pt[0, 0]), float(pt[0, 1]))
                for point_id, pt in zip(self._ids, self._points)}

    def initialize(self, image: np.ndarray, mask: Optional[np.ndarray] = None) -> TrackedPoints:
        """在掩码区域检测角点, 分配新的id"""
        gray = ImageProcessor.to_gray(image)
        if mask is not None:
            mask = np.ascontiguousarray((np.asarray(mask) > 0).astype(np.uint8) * 255)

        corners = cv2.goodFeaturesToTrack(
            gray,
            maxCorners=self.max_features,
            qualityLevel=self.quality,
            minDistance=self.min_distance,
            mask=mask,
            blockSize=self.block_size,
            useHarrisDetector=self.use_harris,
            k=self.harris_k
        )

        if corners is None:
            corners = np.empty((0, 1, 2), dtype=np.float32)

        self._points = corners.astype(np.float32).reshape(-1, 1, 2)
        self._ids = np.arange(self._next_id, self._next_id + len(self._points), dtype=np.int64)
        self._next_id += len(self._points)
        self._prev_image = gray

        logger.debug(f"KLT initialised with {len(self._ids)} features")
        return self._as_dict()

    def track(self, image: np.ndarray) -> TrackedPoints:
        """光流跟踪, 丢失和越界的点被移除"""
        gray = ImageProcessor.to_gray(image)

        if self._prev_image is None or len(self._points) == 0:
            self._prev_image = gray
            return {}

        next_points, status, _ = cv2.calcOpticalFlowPyrLK(
            self._prev_image, gray, self._points, None,
            winSize=(self.window_size, self.window_size),
            maxLevel=self.pyramid_levels,
            criteria=self.lk_criteria
        )
        self._prev_image = gray

        if next_points is None or status is None:
            self._points = np.empty((0, 1, 2), dtype=np.float32)
            self._ids = np.empty(0, dtype=np.int64)
            return {}

        height, width = gray.shape[:2]
        xy = next_points.reshape(-1, 2)
        valid = ((status.reshape(-1) == 1)
                 & (xy[:, 0] >= 0) & (xy[:, 0] < width)
                 & (xy[:, 1] >= 0) & (xy[:, 1] < height))

        self._points = next_points[valid].reshape(-1, 1, 2)
        self._ids = self._ids[valid]
        return self._as_dict()
