"""
Setup script for torch-interval13.

Pure Python package on top of PyTorch; there are no compiled extensions.

To install for development:
    pip install -e ".[test]"
"""

from pathlib import Path

from setuptools import find_packages, setup


def read_version():
    """Read __version__ from the package without importing it (torch may be absent)."""
    init = Path(__file__).parent / "src" / "torch_interval13" / "__init__.py"
    for line in init.read_text().splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip('"')
    raise RuntimeError("__version__ not found")


def main():
    setup(
        name="torch-interval13",
        version=read_version(),
        description=(
            "Segment-length log-probability feature for the 13-state interval gene model "
            "in semi-Markov CRFs"
        ),
        license="MIT",
        python_requires=">=3.10",
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        install_requires=[
            "torch>=2.0",
        ],
        extras_require={
            "test": [
                "pytest>=7.0",
                "numpy",
            ],
        },
    )


if __name__ == "__main__":
    main()
