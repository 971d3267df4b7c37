"""
配置管理器
统一的配置文件加载和管理
"""

import logging
import yaml
from typing import Dict, Any
from pathlib import Path

logger = logging.getLogger(__name__)

# 缺省参数, 各组件以 .get(key, default) 读取同名字段
DEFAULT_CONFIG: Dict[str, Any] = {
    'klt': {
        'max_features': 10000,
        'window_size': 5,
        'quality': 0.01,
        'min_distance': 5,
        'harris_k': 0.01,
        'block_size': 3,
        'pyramid_levels': 3,
        'use_harris': True,
    },
    'tracker': {
        'mask_border': 10,
        'threshold_outlier': 0.5,
        'angle_appear': 65.0,
        'angle_disappear': 75.0,
        'min_points_per_face': 4,
        'reinit_min_points': 10,
        'quality_min_points': 10,
    },
    'vvs': {
        'lambda': 0.8,
        'max_iter': 200,
        'convergence_tolerance': 1e-8,
        'pinv_rcond': 1e-16,
        'damping': 0.0,
        'degeneracy_rcond': 1e-10,
        'compute_interaction': True,
        'min_total_points': 4,
    },
    'robust': {
        'noise_threshold_px': 2.0,
        'first_iteration_scale': 2.0,
        'group_size': 2,
    },
}


class ConfigManager:
    """配置管理器"""

    @staticmethod
    def load_config(config_path: str) -> Dict[str, Any]:
        """
        加载YAML配置文件

        Args:
            config_path: 配置文件路径

        Returns:
            config: 配置字典
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}

        # 处理继承关系
        if 'inherit_from' in config:
            parent_path = config_path.parent / config['inherit_from']
            parent_config = ConfigManager.load_config(parent_path)
            config = ConfigManager.merge_configs(parent_config, config)
            del config['inherit_from']  # 移除继承标记

        return config

    @staticmethod
    def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
        """递归合并配置字典"""
        merged = base_config.copy()

        for key, value in override_config.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = ConfigManager.merge_configs(merged[key], value)
            else:
                merged[key] = value

        return merged

    @staticmethod
    def with_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
        """用缺省参数补全配置"""
        return ConfigManager.merge_configs(DEFAULT_CONFIG, config or {})

    @staticmethod
    def validate_config(config: Dict[str, Any]) -> bool:
        """验证配置有效性"""
        required_sections = ['camera', 'klt', 'tracker', 'vvs']

        for section in required_sections:
            if section not in config:
                logger.warning(f"Missing required section '{section}' in config")
                return False

        # 验证相机参数
        camera_config = config.get('camera', {})
        for key in ('px', 'py', 'u0', 'v0'):
            if key not in camera_config:
                logger.warning(f"Camera parameter '{key}' is missing")
                return False

        # 验证可见性滞回阈值
        tracker_config = config.get('tracker', {})
        angle_appear = tracker_config.get('angle_appear', 65.0)
        angle_disappear = tracker_config.get('angle_disappear', 75.0)
        if angle_appear > angle_disappear:
            logger.warning(f"angle_appear ({angle_appear}) is larger than angle_disappear ({angle_disappear})")
            return False

        return True

    @staticmethod
    def save_config(config: Dict[str, Any], save_path: str):
        """保存配置到文件"""
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, 'w', encoding='utf-8') as f:
            yaml.dump(config, f, default_flow_style=False, allow_unicode=True, indent=2)
