"""
鲁棒估计器
基于Tukey双权函数的M估计, 为每个残差计算权重
"""

from typing import Dict, Any, Optional
import numpy as np

# Tukey常数, 正态分布下95%渐近效率
TUKEY_CONSTANT = 4.6851
# MAD到标准差的一致性系数
MAD_TO_SIGMA = 1.4826


class RobustEstimator:
    """Tukey M估计器

    每次调用根据残差分布重新估计尺度: sigma = 1.4826 * MAD,
    并以相机相关的噪声阈值为下限, 使截断点以像素为单位表达.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.noise_threshold_px = config.get('noise_threshold_px', 2.0)
        self.first_iteration_scale = config.get('first_iteration_scale', 2.0)
        self.group_size = config.get('group_size', 2)

        if self.group_size < 1:
            raise ValueError(f"group_size must be >= 1, got {self.group_size}")
        if self.first_iteration_scale < 1.0:
            raise ValueError("first_iteration_scale must be >= 1.0")

    def threshold_for_focal(self, px: float) -> float:
        """像素噪声阈值换算为归一化坐标"""
        return self.noise_threshold_px / px

    def compute_weights(self, residuals: np.ndarray, iteration: int,
                        threshold: Optional[float] = None,
                        out: Optional[np.ndarray] = None) -> np.ndarray:
        """
        计算残差权重

        Args:
            residuals: 残差向量 [N]
            iteration: 当前迭代次数, 第0次迭代截断点放宽
            threshold: 尺度下限, 与残差同单位; 缺省时残差视为像素
            out: 可复用的输出缓冲区 [N]

        Returns:
            weights: [N], 取值 [0, 1]. 偏差超过截断点的残差权重为0,
                不取 (0, 1] 下界, 使严重外点完全不参与本次迭代
        """
        residuals = np.asarray(residuals, dtype=np.float64)
        n = residuals.shape[0]
        if out is None:
            out = np.empty(n)
        if n == 0:
            return out

        if threshold is None:
            threshold = self.noise_threshold_px

        group = self.group_size if n % self.group_size == 0 else 1
        grouped = residuals.reshape(-1, group)

        median = np.median(grouped, axis=0)
        deviation = np.linalg.norm(grouped - median, axis=1)

        sigma = MAD_TO_SIGMA * np.median(deviation)
        if sigma < threshold:
            sigma = threshold

        cutoff = TUKEY_CONSTANT * sigma
        if iteration == 0:
            cutoff *= self.first_iteration_scale

        u = deviation / cutoff
        weights = np.where(u < 1.0, (1.0 - u * u) ** 2, 0.0)

        out[:] = np.repeat(weights, group)
        return out
