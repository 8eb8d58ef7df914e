"""Shiftcal setup file."""

from setuptools import find_packages, setup  # type: ignore[import-untyped]

setup(
    name="shiftcal",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "flask",
        "sqlalchemy>=2.0",
        "httpx",
        "click",
        "pymysql",
        "pytz",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-mock",
            "pytest-cov",
            "mypy",
            "ruff",
            "types-pytz",
        ],
    },
    entry_points={
        "console_scripts": [
            "shiftcal=shiftcal.commands:cli",
        ],
    },
)
