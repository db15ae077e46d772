#!/usr/bin/env python3
"""
Setup script for multidb.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text() if readme_file.exists() else ""

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_file.exists():
    requirements = [
        line.strip()
        for line in requirements_file.read_text().splitlines()
        if line.strip() and not line.startswith("#")
    ]

MSSQL = ["aioodbc>=0.5.0"]
MYSQL = ["aiomysql>=0.2.0"]
POSTGRES = ["asyncpg>=0.29.0"]

setup(
    name="multidb",
    version="0.1.0",
    description="Async registry of named MSSQL, MySQL and PostgreSQL connection pools",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="multidb Contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "mssql": MSSQL,
        "mysql": MYSQL,
        "postgres": POSTGRES,
        "all": MSSQL + MYSQL + POSTGRES,
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: AsyncIO",
        "Topic :: Database",
    ],
    keywords="database async mssql mysql postgresql connection pool",
)
