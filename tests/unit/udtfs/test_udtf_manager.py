"""Tests for PythonUDTFManager discovery and registration."""

import os
from unittest.mock import MagicMock

import pytest

from udtflow.config import RuntimeConfig
from udtflow.core.runtime import TableFunctionRuntime
from udtflow.exceptions import UnsupportedFeatureError
from udtflow.udtfs.manager import PythonUDTFManager, UDTFDiscoveryError

SAMPLE_NAMES = [
    "count_rows",
    "generate_range",
    "simple_ip_check",
    "split_words",
    "sum_and_count",
]


def write_module(project_dir, name, content, udtf_dir="python_udtfs"):
    directory = os.path.join(project_dir, udtf_dir)
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, name)
    with open(path, "w") as f:
        f.write(content)
    return path


def test_discover_sample_udtfs(sample_project):
    manager = PythonUDTFManager(sample_project)

    udtfs = manager.discover_udtfs()

    assert sorted(udtfs) == SAMPLE_NAMES
    assert manager.discovery_errors == {}


def test_udtf_info(sample_project):
    manager = PythonUDTFManager(sample_project)
    manager.discover_udtfs()

    info = manager.get_udtf_info("COUNT_ROWS")

    assert info["original_name"] == "CountRows"
    assert info["module"] == "python_udtfs.sample_udtfs"
    assert info["type"] == "table"
    assert info["stateful"] is True
    assert info["signature"] == (
        "count_rows(input_table TABLE) RETURNS TABLE(row_count INTEGER)"
    )
    assert manager.get_udtf_info("generate_range")["stateful"] is False
    assert manager.get_udtf_info("missing") is None


def test_list_udtfs_sorted(sample_project):
    manager = PythonUDTFManager(sample_project)
    manager.discover_udtfs()

    assert [info["name"] for info in manager.list_udtfs()] == SAMPLE_NAMES


def test_missing_directory(temp_dir):
    manager = PythonUDTFManager(temp_dir)

    assert manager.discover_udtfs() == {}
    assert "directory_not_found" in manager.discovery_errors

    with pytest.raises(UDTFDiscoveryError):
        manager.discover_udtfs(strict=True)


def test_broken_module_is_recorded(temp_dir):
    write_module(temp_dir, "broken.py", "raise RuntimeError('cannot import')\n")
    write_module(
        temp_dir,
        "good.py",
        "from udtflow import udtf\n\n"
        "@udtf(output_schema='x INT')\n"
        "def one():\n"
        "    yield (1,)\n",
    )
    manager = PythonUDTFManager(temp_dir)

    udtfs = manager.discover_udtfs()

    assert list(udtfs) == ["one"]
    assert "python_udtfs.broken" in manager.discovery_errors

    with pytest.raises(UDTFDiscoveryError):
        manager.discover_udtfs(strict=True)


def test_reexported_handlers_are_skipped(temp_dir):
    write_module(
        temp_dir,
        "base.py",
        "from udtflow import udtf\n\n"
        "@udtf(output_schema='x INT')\n"
        "def one():\n"
        "    yield (1,)\n",
    )
    # A handler whose __module__ points elsewhere counts as an import
    write_module(
        temp_dir,
        "reexport.py",
        "from udtflow import udtf\n\n"
        "def _make():\n"
        "    @udtf(output_schema='x INT', name='other')\n"
        "    def other():\n"
        "        yield (2,)\n"
        "    other.__module__ = 'somewhere.else'\n"
        "    return other\n\n"
        "other = _make()\n",
    )
    manager = PythonUDTFManager(temp_dir)

    assert list(manager.discover_udtfs()) == ["one"]


def test_custom_udtf_dir(temp_dir):
    write_module(
        temp_dir,
        "funcs.py",
        "from udtflow import udtf\n\n"
        "@udtf(output_schema='x INT', name='Custom')\n"
        "def custom():\n"
        "    yield (1,)\n",
        udtf_dir="udtfs",
    )
    manager = PythonUDTFManager(temp_dir)

    assert list(manager.discover_udtfs("udtfs")) == ["custom"]
    assert manager.get_udtf("CUSTOM") is not None


def test_register_with_runtime(sample_project):
    manager = PythonUDTFManager(sample_project)
    manager.discover_udtfs()

    with TableFunctionRuntime() as runtime:
        registered = manager.register_with_runtime(runtime)

        assert registered == SAMPLE_NAMES
        assert [d.name for d in runtime.list_functions()] == SAMPLE_NAMES


def test_register_skips_unsupported(sample_project):
    manager = PythonUDTFManager(sample_project)
    manager.discover_udtfs()

    with TableFunctionRuntime(RuntimeConfig(platform_revision="1")) as runtime:
        registered = manager.register_with_runtime(runtime)

    assert registered == ["generate_range", "simple_ip_check", "split_words"]


def test_register_selected_names(sample_project):
    manager = PythonUDTFManager(sample_project)
    manager.discover_udtfs()
    runtime = MagicMock()
    runtime.register.side_effect = [None, UnsupportedFeatureError("no")]

    registered = manager.register_with_runtime(
        runtime, ["Generate_Range", "count_rows", "missing"]
    )

    assert registered == ["generate_range"]
    assert runtime.register.call_count == 2
