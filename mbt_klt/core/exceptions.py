"""
跟踪异常定义
init/track 向调用者抛出的错误类型
"""


class MbtTrackingError(Exception):
    """跟踪错误基类"""


class ConfigurationError(MbtTrackingError):
    """相机或模型未配置就调用 init/track"""


class InsufficientDataError(MbtTrackingError):
    """对应点数量不足, 无法求解位姿"""

    def __init__(self, message: str, nb_points: int = 0, nb_faces: int = 0):
        super().__init__(message)
        self.nb_points = nb_points
        self.nb_faces = nb_faces


class NumericDegeneracyError(MbtTrackingError):
    """法方程秩亏, 当前面片配置无法约束全部6个自由度"""

    def __init__(self, message: str, rank: int = 0):
        super().__init__(message)
        self.rank = rank
