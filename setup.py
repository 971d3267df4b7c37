"""
MBT-KLT Package Setup
"""

import re
from setuptools import setup, find_packages
from pathlib import Path

# 读取README文件
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text() if (this_directory / "README.md").exists() else ""

# 读取版本信息, 与 mbt_klt/version.py 保持一致
version_source = (this_directory / "mbt_klt" / "version.py").read_text(encoding="utf-8")
version_info = dict(re.findall(r"'(major|minor|patch)': (\d+)", version_source))
version = f"{version_info['major']}.{version_info['minor']}.{version_info['patch']}"

setup(
    name="mbt-klt-tracker",
    version=version,
    author="MBT-KLT Team",
    author_email="team@mbt-klt.dev",
    description="Model-based pose tracking of planar-faced objects with KLT features and robust VVS",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["run_tracking"],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Image Recognition",
    ],
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.19.0",
        "opencv-python>=4.5.0",
        "torch>=1.8.0",
        "PyYAML>=5.4",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=2.10",
            "black>=21.0",
            "flake8>=3.8",
            "mypy>=0.8",
        ],
    },
    entry_points={
        "console_scripts": [
            "mbt-klt-track=run_tracking:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
