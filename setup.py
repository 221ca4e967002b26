from setuptools import setup, find_packages


with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="trafficflow",
    version="0.1.0",
    description="Steady-state traffic flow and capacity modeling for service topologies.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    packages=find_packages(exclude=("tests", "tests.*")),
    package_data={"trafficflow.schemas": ["*.json"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=["pyyaml", "jsonschema"],
    extras_require={"nx": ["networkx"], "test": ["pytest", "networkx"]},
    entry_points={"console_scripts": ["trafficflow=trafficflow.cli:main"]},
)
