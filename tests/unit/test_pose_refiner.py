#!/usr/bin/env python3
"""
PoseRefiner单元测试
测试VVS位姿优化
"""

import pytest
import numpy as np
from unittest.mock import Mock
from mbt_klt.core.exceptions import InsufficientDataError, NumericDegeneracyError
from mbt_klt.frontend.face_observation import FaceObservationModel
from mbt_klt.solvers.geometry_utils import (
    make_pose, split_pose, invert_pose, transform_points, rotation_about_axis, rotation_angle
)
from mbt_klt.solvers.pose_refiner import PoseRefiner, RefinementResult
from mbt_klt.solvers.robust_estimator import RobustEstimator


def pose_about(axis, angle_deg, translation=(0.0, 0.0, 0.5)):
    return make_pose(rotation_about_axis(axis, np.radians(angle_deg)), translation)


class TestPoseRefiner:
    """PoseRefiner测试类"""

    @pytest.fixture(autouse=True)
    def setup(self, camera, square_face, square_points):
        self.camera = camera
        self.face = square_face
        self.points, _ = square_points
        self.observation = FaceObservationModel(camera)
        self.config = {
            'lambda': 0.8,
            'max_iter': 200,
            'convergence_tolerance': 1e-8,
            'min_total_points': 4
        }
        self.refiner = PoseRefiner(self.config, RobustEstimator())
        self.c0_M_o = pose_about([1.0, 0.0, 0.0], 0.0)

    def _setup_face(self, c_M_o, offsets=None):
        """以c0_M_o为锚点建立对应关系, 当前位置为c_M_o下的投影加偏移"""
        R0, T0 = split_pose(self.c0_M_o)
        reference = self.camera.project(transform_points(self.points, R0, T0))
        R, T = split_pose(c_M_o)
        current = self.camera.project(transform_points(self.points, R, T))
        for index, offset in (offsets or {}).items():
            current[index] += offset

        roi = self.observation.project_face(self.face, self.c0_M_o)
        self.observation.init_face(self.face, {i: tuple(uv) for i, uv in enumerate(reference)},
                                   roi, self.c0_M_o)
        self.observation.update_current(self.face, {i: tuple(uv) for i, uv in enumerate(current)})

    def test_refiner_initialization(self):
        assert self.refiner.gain == 0.8
        assert self.refiner.max_iter == 200
        assert self.refiner.convergence_tolerance == 1e-8
        assert self.refiner.compute_interaction

    @pytest.mark.parametrize("axis,angle,translation", [
        ([0.0, 1.0, 0.0], 10.0, (0.0, 0.0, 0.5)),
        ([1.0, 1.0, 0.0], 3.0, (0.01, -0.005, 0.52)),
        ([0.0, 0.0, 1.0], 15.0, (0.0, 0.0, 0.5)),
    ])
    def test_noise_free_convergence(self, axis, angle, translation):
        """测试无噪声数据收敛到真值"""
        true_pose = pose_about(axis, angle, translation)
        self._setup_face(true_pose)

        result = self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)

        assert isinstance(result, RefinementResult)
        assert result.converged
        assert result.iterations <= 200
        assert result.residual_norm < 1e-6
        assert rotation_angle(result.pose[:3, :3] @ true_pose[:3, :3].T) < 1e-4
        assert np.allclose(result.pose[:3, 3], true_pose[:3, 3], atol=1e-5)
        assert np.allclose(result.pose, result.ct_T_c0 @ self.c0_M_o)

    def test_outlier_is_down_weighted(self):
        """测试外点权重低于剔除阈值"""
        true_pose = pose_about([1.0, 0.0, 0.0], 0.0, (0.005, 0.0, 0.5))
        self._setup_face(true_pose, offsets={4: (40.0, 0.0)})

        result = self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)

        ids, weights = result.face_weights(self.face.index)
        k = ids.index(4)
        assert weights[2 * k] < 0.5
        assert weights[2 * k + 1] < 0.5
        inliers = np.delete(weights, [2 * k, 2 * k + 1])
        assert np.all(inliers > 0.5)
        assert np.allclose(result.pose, true_pose, atol=1e-5)

    def test_face_slices(self):
        self._setup_face(self.c0_M_o)
        result = self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)

        start, stop, ids = result.face_slices[self.face.index]
        assert (start, stop) == (0, 18)
        assert ids == tuple(range(9))
        assert result.nb_points == 9
        assert result.nb_faces_used == 1
        assert result.weights.shape == (18,)

    def test_input_pose_not_modified(self):
        """测试调用者的增量位姿不被修改"""
        self._setup_face(pose_about([0.0, 1.0, 0.0], 5.0))
        ct_T_c0 = np.eye(4)

        result = self.refiner.compute_vvs([self.face], self.observation, ct_T_c0, self.c0_M_o)

        assert np.array_equal(ct_T_c0, np.eye(4))
        assert not np.allclose(result.ct_T_c0, np.eye(4))

    def test_insufficient_data(self):
        """测试没有可用面片时抛出异常"""
        with pytest.raises(InsufficientDataError) as excinfo:
            self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)
        assert excinfo.value.nb_points == 0

        self._setup_face(self.c0_M_o)
        for point_id in range(6):
            del self.face.correspondences[point_id]
        with pytest.raises(InsufficientDataError):
            self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)

    def test_min_total_points(self):
        refiner = PoseRefiner({'min_total_points': 20})
        self._setup_face(self.c0_M_o)
        with pytest.raises(InsufficientDataError):
            refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)

    def test_degenerate_configuration(self):
        """测试所有点重合时秩不足"""
        roi = self.observation.project_face(self.face, self.c0_M_o)
        features = {i: (320.0, 240.0) for i in range(6)}
        self.observation.init_face(self.face, features, roi, self.c0_M_o)
        self.observation.update_current(self.face, {i: (321.0, 240.0) for i in range(6)})

        with pytest.raises(NumericDegeneracyError) as excinfo:
            self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)
        assert excinfo.value.rank < 6

    def test_non_finite_residual(self):
        """测试残差出现非有限值"""
        self._setup_face(self.c0_M_o)
        self.face.correspondences[0].current = np.array([np.nan, 240.0])

        with pytest.raises(NumericDegeneracyError):
            self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)

    def test_max_iterations(self):
        """测试达到最大迭代次数时停止"""
        refiner = PoseRefiner({'max_iter': 3})
        self._setup_face(pose_about([0.0, 1.0, 0.0], 5.0))

        result = refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)
        assert result.iterations == 3
        assert not result.converged

    def test_interaction_computed_once(self):
        """测试只在第一次迭代计算交互矩阵"""
        refiner = PoseRefiner({'compute_interaction': False})
        observation = Mock(wraps=self.observation)
        observation.camera = self.camera
        self._setup_face(pose_about([1.0, 0.0, 0.0], 0.0, (0.004, 0.0, 0.5)))

        result = refiner.compute_vvs([self.face], observation, np.eye(4), self.c0_M_o)

        calls = observation.compute_interaction_and_residual.call_args_list
        assert len(calls) == result.iterations
        assert calls[0].args[6] is not None
        assert all(call.args[6] is None for call in calls[1:])

    def test_buffers_are_reused(self):
        self._setup_face(self.c0_M_o)
        self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)
        residual_buffer = self.refiner._residual

        self.refiner.compute_vvs([self.face], self.observation, np.eye(4), self.c0_M_o)
        assert self.refiner._residual is residual_buffer
