#!/usr/bin/env python3
# =============================================================================
#  plonk-circuit-analyzer — setup.py
#
#  The version lives in plonk_analyzer/__init__.py and runtime dependencies
#  in requirements.txt; this file reads both so there is a single source of
#  truth for each.
#
#      pip install -e ".[dev]"
#      python -m pytest
# =============================================================================

from __future__ import annotations

import re
from pathlib import Path

from setuptools import setup, find_packages

_HERE = Path(__file__).resolve().parent


def _read_version() -> str:
    """Extract ``__version__`` from the package without importing it."""
    init = _HERE / "plonk_analyzer" / "__init__.py"
    text = init.read_text(encoding="utf-8")
    match = re.search(r'^__version__\s*=\s*"([^"]+)"', text, re.MULTILINE)
    if match:
        return match.group(1)
    return "0.0.0"


def _read_long_description() -> str:
    """Read README.md for the long description."""
    readme = _HERE / "README.md"
    if readme.exists():
        return readme.read_text(encoding="utf-8")
    return ""


def _read_requirements() -> list[str]:
    """Read requirements.txt if it exists."""
    req_file = _HERE / "requirements.txt"
    if req_file.exists():
        lines = req_file.read_text(encoding="utf-8").splitlines()
        return [
            ln.strip()
            for ln in lines
            if ln.strip() and not ln.strip().startswith("#")
        ]
    return []


setup(
    name="plonk-circuit-analyzer",
    version=_read_version(),
    description=(
        "Static analysis of PLONK arithmetic circuits: dead gates, "
        "unconstrained cells and SMT-based underconstraint detection."
    ),
    long_description=_read_long_description(),
    long_description_content_type="text/markdown",
    license="MIT",
    author="plonk-circuit-analyzer contributors",
    python_requires=">=3.10",
    packages=find_packages(
        include=[
            "plonk_analyzer",
            "plonk_analyzer.*",
        ],
        exclude=[
            "tests",
            "tests.*",
            "examples",
            "examples.*",
        ],
    ),
    install_requires=_read_requirements(),
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "ruff>=0.4",
            "mypy>=1.10",
            "black>=24.0",
            "isort>=5.13",
        ],
        "z3": [
            "z3-solver>=4.12",
        ],
    },
    entry_points={
        "console_scripts": [
            "plonk-analyzer=plonk_analyzer.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Security :: Cryptography",
        "Topic :: Software Development :: Quality Assurance",
    ],
    keywords=[
        "plonk",
        "halo2",
        "zero-knowledge",
        "static-analysis",
        "smt",
        "cvc5",
    ],
    zip_safe=False,
)
