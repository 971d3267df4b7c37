#!/usr/bin/env python3
"""
测试运行脚本
按单元/集成分组运行pytest, 可选覆盖率报告
"""

import sys
import subprocess
import importlib
from pathlib import Path
import argparse

PROJECT_ROOT = Path(__file__).parent

TEST_PATHS = {
    'unit': ['tests/unit/'],
    'integration': ['tests/integration/'],
    'all': ['tests/'],
}

# 导入名 -> pip包名
TEST_DEPENDENCIES = {
    'pytest': 'pytest',
    'numpy': 'numpy',
    'cv2': 'opencv-python',
    'torch': 'torch',
    'yaml': 'PyYAML',
}


def build_command(test_type='all', verbose=True, coverage=False, keyword=None, failfast=False):
    """组装pytest命令"""
    cmd = [sys.executable, '-m', 'pytest'] + TEST_PATHS[test_type]

    if verbose:
        cmd.append('-v')
    if keyword:
        cmd.extend(['-k', keyword])
    if failfast:
        cmd.append('-x')
    if coverage:
        cmd.extend(['--cov=mbt_klt', '--cov-report=html', '--cov-report=term-missing'])

    cmd.extend(['--tb=short', '--disable-warnings'])
    return cmd


def run_tests(test_type='all', verbose=True, coverage=False, keyword=None, failfast=False):
    """运行测试"""
    cmd = build_command(test_type, verbose, coverage, keyword, failfast)
    print(f"Running {test_type} tests: {' '.join(cmd)}")
    print("-" * 60)

    result = subprocess.run(cmd, cwd=PROJECT_ROOT)
    return result.returncode == 0


def check_dependencies():
    """检查测试依赖"""
    missing = []
    for module_name, package_name in TEST_DEPENDENCIES.items():
        try:
            importlib.import_module(module_name)
        except ImportError:
            missing.append(package_name)

    if missing:
        print(f"[FAIL] Missing test dependencies: {', '.join(missing)}")
        print(f"Install them with: pip install {' '.join(missing)}")
        return False

    print("[OK] All test dependencies are available")
    return True


def main():
    """主函数"""
    parser = argparse.ArgumentParser(description='Run MBT-KLT tests')
    parser.add_argument('--type', choices=sorted(TEST_PATHS), default='all',
                        help='测试类型 (默认: all)')
    parser.add_argument('--verbose', action='store_true',
                        help='详细输出')
    parser.add_argument('--coverage', action='store_true',
                        help='生成覆盖率报告')
    parser.add_argument('-k', '--keyword', type=str, default=None,
                        help='只运行名称匹配的测试')
    parser.add_argument('-x', '--failfast', action='store_true',
                        help='遇到第一个失败即停止')
    parser.add_argument('--check-deps', action='store_true',
                        help='只检查依赖')

    args = parser.parse_args()

    if not check_dependencies():
        return False
    if args.check_deps:
        return True

    success = run_tests(args.type, args.verbose, args.coverage, args.keyword, args.failfast)
    print("\n[OK] All tests passed!" if success else "\n[FAIL] Some tests failed!")
    return success


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
