"""Setup script for udtflow."""

from setuptools import find_packages, setup

setup(
    name="udtflow",
    version="0.1.0",
    description="Local runtime for Python user-defined table functions",
    author="udtflow Team",
    packages=find_packages(include=["udtflow", "udtflow.*"]),
    install_requires=[
        "duckdb>=1.2.0",  # Table catalog
        "pandas>=2.0.0",  # DataFrame inputs and results
        "pyarrow>=10.0.0",  # Arrow inputs and results
        "typer>=0.9.0",  # CLI framework
        "rich>=13.0.0",  # CLI output
        "pyyaml>=6.0",  # Profile configuration
        "python-dotenv>=1.0.0",  # Project .env files
    ],
    package_data={
        "udtflow": ["py.typed"],
    },
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
            "black>=22.1.0",
            "isort>=5.10.1",
            "flake8>=4.0.1",
            "mypy>=1.0.0",  # Type checking
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "udtflow=udtflow.cli.main:cli",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
    ],
)
