from setuptools import setup, find_packages

setup(
    name="dynamic_topmodel",
    version="0.1",
    packages=find_packages(exclude=["tests", "scripts"]),
    install_requires=[
        "numpy",
        "pandas",
        "matplotlib",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
)
