"""Pytest configuration for udtflow tests."""

import os
import shutil
import tempfile
from typing import Dict, Generator

import pandas as pd
import pytest

from udtflow.config import RuntimeConfig
from udtflow.core.runtime import TableFunctionRuntime
from udtflow.udtfs.manager import PythonUDTFManager

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests.

    Yields
    ------
        Path to the temporary directory

    """
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield tmp_dir


@pytest.fixture
def sample_project(temp_dir) -> str:
    """Return a project directory holding the sample UDTFs and a dev profile."""
    shutil.copytree(
        os.path.join(REPO_ROOT, "python_udtfs"),
        os.path.join(temp_dir, "python_udtfs"),
    )
    shutil.copytree(
        os.path.join(REPO_ROOT, "profiles"), os.path.join(temp_dir, "profiles")
    )
    return temp_dir


@pytest.fixture(scope="session")
def sample_udtfs() -> Dict[str, object]:
    """Return the sample handlers keyed by table function name."""
    manager = PythonUDTFManager(project_dir=REPO_ROOT)
    udtfs = manager.discover_udtfs(strict=True)
    return dict(udtfs)


@pytest.fixture
def simple_data() -> pd.DataFrame:
    """Return the three-row table used by the documentation examples."""
    return pd.DataFrame({"id": [1, 2, 3], "value": [10, 20, 30]})


@pytest.fixture
def runtime(sample_udtfs, simple_data) -> Generator[TableFunctionRuntime, None, None]:
    """Return a runtime with the sample UDTFs and ``simple_data`` registered."""
    with TableFunctionRuntime(RuntimeConfig()) as rt:
        for handler in sample_udtfs.values():
            rt.register(handler)
        rt.register_table("simple_data", simple_data)
        yield rt


@pytest.fixture
def parallel_runtime(
    sample_udtfs, simple_data
) -> Generator[TableFunctionRuntime, None, None]:
    """Return a runtime that dispatches partitions to a thread pool."""
    with TableFunctionRuntime(RuntimeConfig(parallel=True, max_workers=3)) as rt:
        for handler in sample_udtfs.values():
            rt.register(handler)
        rt.register_table("simple_data", simple_data)
        yield rt
