"""
数据结构定义
定义系统中使用的通用数据结构
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, Any, Optional


@dataclass
class TrackingResult:
    """单帧跟踪结果"""
    frame_id: int
    pose: np.ndarray                    # 4x4 cMo
    nb_points: int = 0                  # 参与优化的对应点数
    nb_faces_used: int = 0              # 参与优化的面片数
    nb_outliers: int = 0                # 本帧剔除的外点数
    iterations: int = 0
    residual_norm: float = 0.0
    converged: bool = False
    reinitialised: bool = False
    processing_time: float = 0.0        # 处理时间(ms)
    weights: Optional[np.ndarray] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
