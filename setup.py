from setuptools import setup, find_packages

setup(
    name="traverse_tool",
    version="1.0.0",
    packages=find_packages(),
    install_requires=[
        "pandas>=1.3.0",
        "numpy>=1.20.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "traverse-cli=traverse_tool.cli.main:main",
        ],
    },
    python_requires=">=3.8",
    author="Geodetic Tools",
    description="Leveling traverse adjustment engine",
)
