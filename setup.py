#!/usr/bin/python3

from setuptools import find_packages, setup

with open("README.md", "r") as f:
    readme = f.read()

setup(
    name="portplan",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"portplan": ["schema.yml"]},
    python_requires=">=3.11.4",  # tarfile extraction filters
    install_requires=[
        "colorama",
        "jsonschema",
        "pyyaml",
        "zstandard",  # For binary cache archives.
    ],
    extras_require={
        "test": [
            "pytest",
            "black",
            "flake8",
            "pep8-naming",
            "flake8-isort",
        ]
    },
    entry_points={
        "console_scripts": [
            "portplan = portplan:main",
        ]
    },
    # Package metadata.
    license="MIT",
    long_description=readme,
    long_description_content_type="text/markdown",
)
