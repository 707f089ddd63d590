#!/usr/bin/env python
# -*- coding: utf-8 -*-

from setuptools import setup, find_packages

with open("requirements.txt") as f:
    requirements = f.read().splitlines()

setup(
    name="guibridge",
    version="0.1.0",
    description="GUI automation bridge for accessibility trees and in-process agents",
    author="",
    author_email="",
    url="",
    packages=find_packages(exclude=["tests", "tests.*"]),
    entry_points={
        "console_scripts": [
            "guibridge=guibridge.cli:main",
        ],
    },
    install_requires=requirements,
    extras_require={
        "macos": [
            "pyobjc-core",
            "pyobjc-framework-Cocoa",
            "pyobjc-framework-ApplicationServices",
        ],
        "atspi": ["PyGObject"],
        "input": ["pynput"],
        "test": ["pytest"],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Natural Language :: English",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    include_package_data=True,
)
