#!/usr/bin/python
from setuptools import find_packages, setup

from vulnstore import version

package_name = "vulnstore"

with open("requirements.txt") as f:
    requirements = f.read().splitlines()

setup(
    name=package_name,
    description="Vulnerability store: content-addressed vulnerability records, normalized dimensions and namespace resolution",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "tests.*"]),
    version=version.version,
    include_package_data=True,
    package_data={"vulnstore": ["conf/*.yaml"]},
    install_requires=requirements,
    extras_require={"test": ["pytest>=6.2"]},
    scripts=[],
)
