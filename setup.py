"""
Setup script for Resource Provider
"""
from setuptools import setup, find_packages

setup(
    name="resource-provider",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi>=0.115.0",
        "pydantic>=2.8.0",
        "sqlalchemy[asyncio]>=2.0.30",
        "python-dotenv>=1.0.1",
        "httpx>=0.27.0",
        "aiosqlite>=0.20.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    description="Resource Provider - propagates resource state to registered consumer services",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
