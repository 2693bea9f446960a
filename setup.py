#!/usr/bin/env python3
"""Setup script for Infinite Canvas."""

from setuptools import setup, find_packages

setup(
    name="infinitecanvas",
    version="1.0.0",
    description="An infinite node-graph canvas with LLM idea generation",
    author="Infinite Canvas Project",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "PyGObject>=3.46.0",
        "pycairo>=1.25.0",
        "httpx>=0.27.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "infinitecanvas=infinitecanvas.launcher:main",
        ],
        "gui_scripts": [
            "infinitecanvas-gui=infinitecanvas.launcher:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: X11 Applications :: GTK",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business",
    ],
)
