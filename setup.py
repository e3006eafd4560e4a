#!/usr/bin/env python3

from setuptools import find_namespace_packages, setup


def get_version():
    with open("debian/changelog", "r", encoding="utf-8") as f:
        return f.readline().split()[1][1:-1]


setup(
    name="falnet-nerves",
    version=get_version(),
    description="Home automation hub aggregating device bridges discovered over SSDP",
    license="MIT",
    author="Faltung Systems",
    author_email="dev@faltung.systems",
    maintainer="Faltung Systems",
    maintainer_email="dev@faltung.systems",
    packages=find_namespace_packages(include=["falnet", "falnet.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0",
        "python-socketio>=5.0",
        "aiohttp>=3.8",
        "uvicorn>=0.20",
        "websockets>=10.0",
        "paho-mqtt>=2.0",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "falnet-nerves-hubd=falnet.nerves.hubd.main:run",
            "falnet-nerves-bridged=falnet.nerves.bridged.main:run",
        ],
    },
)
