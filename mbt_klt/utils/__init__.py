"""
工具模块
包含相机模型、数据转换和配置管理等实用工具
"""

from .camera import CameraParameters
from .data_converter import ImageProcessor
from .config_manager import ConfigManager

__all__ = [
    'CameraParameters',
    'ImageProcessor',
    'ConfigManager'
]
