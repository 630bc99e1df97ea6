from __future__ import annotations

from pathlib import Path

from setuptools import find_packages, setup


ROOT = Path(__file__).parent


def _version() -> str:
    # read without importing the package, which needs numpy at import time
    for line in (ROOT / "gsdrecon" / "__init__.py").read_text(encoding="utf-8").splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip("\"'")
    raise RuntimeError("gsdrecon/__init__.py defines no __version__")


if __name__ == "__main__":
    setup(
        name="gsd-reconstruction",
        version=_version(),
        description="Gaussian kernel density reconstruction of GSD / single-molecule event count images",
        packages=find_packages(include=["gsdrecon", "gsdrecon.*"]),
        python_requires=">=3.11",
        install_requires=[
            "numpy>=1.24",
            "tifffile>=2023.1.23",
            "tqdm>=4.64",
        ],
        extras_require={
            "dask": ["dask[array]>=2023.1"],
            "test": ["pytest>=7"],
        },
        entry_points={
            "console_scripts": ["gsdrecon=gsdrecon.cli:main"],
        },
    )
