#!/usr/bin/env python3
"""
Setup script for omti package.
"""

import os
from setuptools import setup, find_packages

# Read README for long description
this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name="omti",
    version="1.0.0",
    description="GitHub repository and PostgreSQL backup helper - drives gh, git, ssh and pg_dump (No external dependencies)",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Operating System :: MacOS",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Database",
        "Topic :: Software Development :: Version Control :: Git",
        "Topic :: Utilities"
    ],
    python_requires=">=3.8",
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'omti=omti.cli:main',
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
