#!/usr/bin/env python3
"""Setup script for push-backup."""

from setuptools import setup

with open("README.md", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="push-backup",
    version="1.0.0",
    description="Push the current git branch to every mirror of an aggregate remote",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="codefuturist",
    license="MIT",
    packages=["push_backup"],
    python_requires=">=3.9",
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "push-backup=push_backup.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Software Development :: Version Control :: Git",
    ],
    keywords="git push mirror backup remote",
)
