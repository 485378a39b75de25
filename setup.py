#!/usr/bin/env python

from pathlib import Path

from setuptools import find_packages, setup

this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

setup(
    name="fisherpy",
    version="0.1.0",
    license="MIT",
    packages=find_packages("src", exclude=["tests", "tests.*"]),
    package_dir={"": "src"},
    keywords="quantum-metrology fisher-information stochastic-master-equation",
    python_requires=">=3.10",
    install_requires=["numpy", "scipy", "tqdm"],
    extras_require={
        "qutip": ["qutip>=5"],
        "test": ["pytest"],
        "docs": ["sphinx", "sphinx_rtd_theme"],
    },
    package_data={"fisherpy": ["data_files/*.json"]},
    include_package_data=True,
    long_description=long_description,
    long_description_content_type="text/markdown",
)

# Build with:
# python setup.py sdist
#
# Local install with:
# pip install dist/*.tar.gz --user
