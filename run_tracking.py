#!/usr/bin/env python3
"""
MBT-KLT Tracking - Main Entry Point
基于模型的KLT位姿跟踪启动脚本
"""

import sys
import time
import logging
import argparse
import cv2
import numpy as np
from pathlib import Path

from mbt_klt import MbtKltTracker, FaceModelLoader, ConfigManager, MbtTrackingError
from mbt_klt.solvers.geometry_utils import make_pose


def parse_arguments(argv=None):
    """解析命令行参数"""
    parser = argparse.ArgumentParser(description='MBT-KLT model-based pose tracking')

    parser.add_argument('--video', type=str, required=True,
                        help='视频文件路径或相机编号')
    parser.add_argument('--config', type=str, default='configs/mbt_klt_default.yaml',
                        help='跟踪器配置文件 (默认: configs/mbt_klt_default.yaml)')
    parser.add_argument('--model', type=str, required=True,
                        help='面片模型文件 (YAML)')
    parser.add_argument('--output-dir', type=str, default='output',
                        help='输出目录 (默认: output)')
    parser.add_argument('--max-frames', type=int, default=0,
                        help='最多处理帧数, 0表示全部')
    parser.add_argument('--log-level', default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='日志级别 (默认: INFO)')

    return parser.parse_args(argv)


def setup_logging(output_path: Path, level: str = 'INFO') -> logging.Logger:
    """初始化日志系统"""
    log_file = output_path / "tracking.log"
    logging.basicConfig(
        level=getattr(logging, level),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
    return logging.getLogger('MbtKlt')


def initial_pose_from_config(config) -> np.ndarray:
    """从配置的 initial_pose.rvec / tvec 构造初始位姿"""
    pose_config = config.get('initial_pose', {})
    rvec = np.asarray(pose_config.get('rvec', [0.0, 0.0, 0.0]), dtype=np.float64).reshape(3, 1)
    tvec = np.asarray(pose_config.get('tvec', [0.0, 0.0, 0.0]), dtype=np.float64)
    R, _ = cv2.Rodrigues(rvec)
    return make_pose(R, tvec)


def open_video(source: str) -> cv2.VideoCapture:
    """打开视频文件或相机"""
    capture = cv2.VideoCapture(int(source) if source.isdigit() else source)
    if not capture.isOpened():
        raise IOError(f"Cannot open video source: {source}")
    return capture


def format_pose(frame_id: int, pose: np.ndarray) -> str:
    """一行: 帧号 + 3x4位姿"""
    values = ' '.join(f"{value:.9f}" for value in pose[:3, :4].reshape(-1))
    return f"{frame_id} {values}"


def main(argv=None):
    """主函数"""
    args = parse_arguments(argv)

    output_path = Path(args.output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    logger = setup_logging(output_path, args.log_level)

    config = ConfigManager.load_config(args.config)
    if not ConfigManager.validate_config(ConfigManager.with_defaults(config)):
        logger.error(f"Invalid configuration: {args.config}")
        return 1

    tracker = MbtKltTracker(config)
    tracker.load_model(FaceModelLoader.load_model(args.model))
    tracker.set_pose(initial_pose_from_config(config))

    capture = open_video(args.video)
    pose_file = output_path / "poses.txt"
    frame_count = 0
    start_time = time.time()

    try:
        with open(pose_file, 'w', encoding='utf-8') as f:
            while args.max_frames <= 0 or frame_count < args.max_frames:
                ok, frame = capture.read()
                if not ok:
                    break

                if frame_count == 0:
                    tracker.init(frame)
                    pose = tracker.get_pose()
                else:
                    pose = tracker.track(frame)

                f.write(format_pose(frame_count, pose) + "\n")
                frame_count += 1

                if tracker.last_result is not None and frame_count % 30 == 0:
                    result = tracker.last_result
                    logger.info(f"Frame {frame_count}: {result.nb_points} points, "
                                f"{result.iterations} iterations, {result.processing_time:.1f} ms")

    except MbtTrackingError as e:
        logger.error(f"Tracking stopped at frame {frame_count}: {e}")
        return 2
    except KeyboardInterrupt:
        logger.info("用户中断")
    finally:
        capture.release()

    elapsed = time.time() - start_time
    logger.info(f"Processed {frame_count} frames in {elapsed:.1f}s, poses saved to {pose_file}")
    for key, stats in tracker.get_performance_stats().items():
        logger.info(f"{key}: mean {stats['mean']:.2f} ms, max {stats['max']:.2f} ms")

    return 0


if __name__ == "__main__":
    sys.exit(main())
