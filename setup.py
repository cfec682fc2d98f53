from setuptools import setup, find_packages

setup(
    name="revlang",
    version="0.1.0",
    description="Reversible imperative mini-language and interpreter",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "z3-solver>=4.12.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "revlang=revlang.cli:main",
        ],
    },
)
