"""
数据格式转换工具
把输入帧统一转换为跟踪器使用的灰度图
"""

import numpy as np
import torch
import cv2
from typing import Union


class ImageProcessor:
    """图像处理和格式转换"""

    @staticmethod
    def torch_to_cv2(img_tensor: torch.Tensor) -> np.ndarray:
        """PyTorch张量转OpenCV格式"""
        if img_tensor.dim() == 4:  # [B, C, H, W]
            img_tensor = img_tensor.squeeze(0)
        if img_tensor.dim() == 3 and img_tensor.shape[0] == 1:  # [1, H, W] -> [H, W]
            img_tensor = img_tensor.squeeze(0)

        img_np = img_tensor.detach().cpu().numpy()

        if img_np.dtype != np.uint8:
            img_np = np.clip(img_np * 255, 0, 255).astype(np.uint8)

        if len(img_np.shape) == 2:  # Grayscale [H, W]
            return img_np
        elif len(img_np.shape) == 3:  # RGB [C, H, W] -> [H, W, C]
            img_np = np.transpose(img_np, (1, 2, 0))
            # 张量按RGB存储, 转成OpenCV的BGR
            return cv2.cvtColor(np.ascontiguousarray(img_np), cv2.COLOR_RGB2BGR)
        else:
            raise ValueError(f"Unsupported tensor shape: {img_np.shape}")

    @staticmethod
    def to_gray(image: Union[np.ndarray, torch.Tensor]) -> np.ndarray:
        """
        转换为连续的uint8灰度图

        Args:
            image: BGR/灰度numpy图像, 或 [B, C, H, W] / [C, H, W] / [H, W] 张量

        Returns:
            gray: [H, W] uint8
        """
        if isinstance(image, torch.Tensor):
            image = ImageProcessor.torch_to_cv2(image)

        image = np.asarray(image)
        if image.dtype != np.uint8:
            if np.issubdtype(image.dtype, np.floating) and image.size and image.max() <= 1.0:
                image = image * 255
            image = np.clip(image, 0, 255).astype(np.uint8)

        if image.ndim == 3 and image.shape[2] == 1:
            image = image[:, :, 0]
        elif image.ndim == 3 and image.shape[2] == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif image.ndim == 3 and image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.ndim != 2:
            raise ValueError(f"Unsupported image shape: {image.shape}")

        return np.ascontiguousarray(image)
