"""
pytest配置文件
定义测试夹具和全局配置
"""

import pytest
import sys
import numpy as np
from pathlib import Path

# 添加项目路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from mbt_klt.frontend.point_tracker import PointTracker
from mbt_klt.model.face import Face
from mbt_klt.model.model_loader import FaceModelLoader
from mbt_klt.solvers.geometry_utils import split_pose, transform_points
from mbt_klt.utils.camera import CameraParameters

IMAGE_SHAPE = (480, 640)


class SyntheticPointTracker(PointTracker):
    """按真值位姿投影物体点的点跟踪器, 在测试中替代KLT

    背向相机的点不会被检测, 也不会被跟踪.
    """

    def __init__(self, camera, object_points, normals, pose=None):
        super().__init__()
        self.camera = camera
        self.object_points = np.asarray(object_points, dtype=np.float64).reshape(-1, 3)
        self.normals = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
        self.pose = np.eye(4) if pose is None else pose
        self.offsets = {}       # 点序号 -> 像素偏移, 模拟外点
        self.lost = set()       # 点序号, 模拟跟踪丢失
        self.nb_initialize_calls = 0
        self._active = {}       # 跟踪id -> 点序号
        self._next_id = 0

    def _facing(self, key):
        R, T = split_pose(self.pose)
        point_c = R @ self.object_points[key] + T
        return point_c[2] > 0 and np.dot(R @ self.normals[key], -point_c) > 0

    def _pixel(self, key):
        R, T = split_pose(self.pose)
        uv = self.camera.project(transform_points(self.object_points[key], R, T))[0]
        return uv + np.asarray(self.offsets.get(key, (0.0, 0.0)))

    def initialize(self, image, mask=None):
        self.nb_initialize_calls += 1
        self._active = {}
        height, width = image.shape[:2]
        for key in range(len(self.object_points)):
            if not self._facing(key):
                continue
            u, v = self._pixel(key)
            if not (0 <= u < width and 0 <= v < height):
                continue
            if mask is not None and mask[int(v), int(u)] == 0:
                continue
            self._active[self._next_id] = key
            self._next_id += 1
        return self.track(image)

    def track(self, image):
        tracked = {}
        for point_id, key in self._active.items():
            if key in self.lost or not self._facing(key):
                continue
            u, v = self._pixel(key)
            tracked[point_id] = (float(u), float(v))
        return tracked

    def get_nb_features(self):
        return len(self._active)


def face_grid(center, axis_u, axis_v, half_extent, normal):
    """面片上3x3规则网格点及其法向"""
    center = np.asarray(center, dtype=np.float64)
    axis_u = np.asarray(axis_u, dtype=np.float64)
    axis_v = np.asarray(axis_v, dtype=np.float64)
    points = [center + a * half_extent * axis_u + b * half_extent * axis_v
              for a in (-1, 0, 1) for b in (-1, 0, 1)]
    normals = [normal] * len(points)
    return np.array(points), np.array(normals, dtype=np.float64)


@pytest.fixture
def camera():
    """640x480图像的针孔相机"""
    return CameraParameters(px=600.0, py=600.0, u0=320.0, v0=240.0)


@pytest.fixture
def blank_image():
    return np.zeros(IMAGE_SHAPE, dtype=np.uint8)


@pytest.fixture
def square_face():
    """边长0.3m的正方形面片, 位于物体坐标系z=0平面, 法向-z"""
    return Face(index=0, points=[[-0.15, -0.15, 0.0], [-0.15, 0.15, 0.0],
                                 [0.15, 0.15, 0.0], [0.15, -0.15, 0.0]])


@pytest.fixture
def square_points():
    """正方形面片内部的9个特征点"""
    return face_grid([0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], 0.075, [0.0, 0.0, -1.0])


@pytest.fixture
def cube_faces():
    """边长0.1m的立方体模型"""
    return FaceModelLoader.load_model(project_root / 'configs' / 'models' / 'cube.yaml')


@pytest.fixture
def cube_points():
    """立方体 -z 面与 +x 面上的特征点"""
    front_points, front_normals = face_grid([0.0, 0.0, -0.05], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0],
                                            0.025, [0.0, 0.0, -1.0])
    side_points, side_normals = face_grid([0.05, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0],
                                          0.025, [1.0, 0.0, 0.0])
    return np.vstack([front_points, side_points]), np.vstack([front_normals, side_normals])


@pytest.fixture
def make_point_tracker(camera):
    """SyntheticPointTracker工厂"""
    def factory(points_and_normals, pose=None):
        points, normals = points_and_normals
        return SyntheticPointTracker(camera, points, normals, pose)
    return factory


@pytest.fixture
def tracker_config():
    """测试用跟踪器配置, 关闭按总点数的重新初始化"""
    return {
        'camera': {'px': 600.0, 'py': 600.0, 'u0': 320.0, 'v0': 240.0},
        'tracker': {
            'reinit_min_points': 0,
            'quality_min_points': 4,
        },
    }
