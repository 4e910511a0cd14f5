#!/usr/bin/env python3
"""
Setup script for goproxy.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

setup(
    name="goproxy",
    version="0.1.0",
    description="Go module proxy store with deterministic artifacts and commit-last publishing",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="goproxy Contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "click>=8.1.0",
        "PyYAML>=6.0",
        "uvicorn>=0.30.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "s3": [
            "boto3>=1.28.0",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "goproxy=goproxy.cli.__main__:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Build Tools",
        "Topic :: System :: Archiving :: Packaging",
    ],
    keywords="go golang module proxy goproxy asgi",
)
