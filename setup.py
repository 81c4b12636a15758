from setuptools import setup, find_packages

setup(
    name="verism",
    version="0.1.0",
    description="VERISM — state-machine specification compiler",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "z3-solver>=4.12.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "verism=verism.cli:main",
        ],
    },
)
