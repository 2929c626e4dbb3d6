#!/usr/bin/env python3
"""
memtext Setup Script
====================
Allows installation of the memtext package.

Usage:
    pip install -e .           # Development install
    pip install -e .[test]     # Development install with test tools
    pip install .              # Regular install
"""

from setuptools import setup, find_packages

setup(
    name="memtext",
    version="1.0.0",
    description="asyncio client for the memcached text protocol",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "memtext=memtext.cli:main",
        ],
    },
)
