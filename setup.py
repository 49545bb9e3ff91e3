#!/usr/bin/env python3
"""
Setup script for the Guide pub/sub quickstart client
"""

from setuptools import setup, find_packages

setup(
    name="guide-quickstart",
    version="0.0.1",
    description="Terminal client that follows and publishes to the_guide pub/sub channel",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pubnub>=9.0.0",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "aioconsole==0.8.1",
        "PyYAML==6.0.2",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.9",
    entry_points={
        'console_scripts': [
            'guide=guide.cli:main',
        ],
    },
)
