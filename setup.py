#!/usr/bin/env python3
"""
HerdGuard Setup Configuration
Stampede-safe caching for async Python services
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()


def read_requirements(path):
    with open(path, "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip() and not line.startswith("#")]


setup(
    name="herdguard",
    version="1.0.0",
    description="Namespaced Redis cache facade with in-memory fallback and stampede protection",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Framework :: AsyncIO",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=read_requirements("config/requirements.txt"),
    extras_require={
        "test": read_requirements("config/requirements-test.txt"),
    },
    entry_points={
        "console_scripts": [
            "herdguard=herdguard.cli:main",
        ],
    },
    include_package_data=True,
    keywords="cache redis asyncio stampede thundering-herd",
)
