"""
模型加载器
从YAML文件或字典读取物体的面片描述
"""

import logging
import yaml
from pathlib import Path
from typing import Dict, Any, List, Union

from .face import Face

logger = logging.getLogger(__name__)


class FaceModelLoader:
    """面片模型加载器

    文件格式::

        faces:
          - points: [[x, y, z], ...]   # 物体坐标系, 从外侧看逆时针
            normal: [nx, ny, nz]       # 可选
    """

    @staticmethod
    def load_model(model_path: Union[str, Path], min_points: int = 4) -> List[Face]:
        """加载YAML模型文件"""
        model_path = Path(model_path)
        if not model_path.exists():
            raise FileNotFoundError(f"Model file not found: {model_path}")

        with open(model_path, 'r', encoding='utf-8') as f:
            description = yaml.safe_load(f)

        faces = FaceModelLoader.from_dict(description, min_points=min_points)
        logger.info(f"Loaded {len(faces)} faces from {model_path}")
        return faces

    @staticmethod
    def from_dict(description: Dict[str, Any], min_points: int = 4) -> List[Face]:
        """从字典描述构造面片列表"""
        if not description or 'faces' not in description:
            raise ValueError("Model description must contain a 'faces' list")

        faces = []
        for index, face_desc in enumerate(description['faces']):
            if 'points' not in face_desc:
                raise ValueError(f"Face {index} has no 'points'")
            faces.append(Face(
                index=index,
                points=face_desc['points'],
                normal=face_desc.get('normal'),
                min_points=min_points,
            ))
        return faces
