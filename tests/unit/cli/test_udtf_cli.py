"""Tests for the ``udtflow udtf`` commands."""

import json
import os
import shutil

import pytest
from typer.testing import CliRunner

from udtflow.cli.commands.udtf import _partition_key, udtf_app
from udtflow.cli.main import app
from udtflow.core.planner import Literal

runner = CliRunner()


@pytest.fixture
def data_csv(temp_dir):
    path = os.path.join(temp_dir, "data.csv")
    with open(path, "w") as f:
        f.write("id,value\n1,10\n2,20\n3,30\n")
    return path


def test_list_plain(sample_project):
    result = runner.invoke(
        udtf_app, ["list", "--project-dir", sample_project, "--plain"]
    )

    assert result.exit_code == 0
    assert "generate_range (scalar): Yield n, n squared" in result.stdout
    assert "count_rows (table): Count the rows of each partition." in result.stdout


def test_list_json(sample_project):
    result = runner.invoke(
        udtf_app, ["list", "--project-dir", sample_project, "--format", "json"]
    )

    assert result.exit_code == 0
    names = [info["name"] for info in json.loads(result.stdout)]
    assert names == [
        "count_rows",
        "generate_range",
        "simple_ip_check",
        "split_words",
        "sum_and_count",
    ]


def test_list_json_keeps_long_values_on_one_line(sample_project, temp_dir):
    deep_project = os.path.join(temp_dir, "a" * 60, "b" * 60, "project")
    shutil.copytree(
        os.path.join(sample_project, "python_udtfs"),
        os.path.join(deep_project, "python_udtfs"),
    )

    result = runner.invoke(
        udtf_app, ["list", "--project-dir", deep_project, "--format", "json"]
    )

    assert result.exit_code == 0
    infos = json.loads(result.stdout)
    assert infos[0]["file_path"].startswith(deep_project)


def test_list_rich_table(sample_project):
    result = runner.invoke(udtf_app, ["list", "--project-dir", sample_project])

    assert result.exit_code == 0
    assert "Available UDTFs (5)" in result.stdout


def test_list_empty_project(temp_dir):
    os.makedirs(os.path.join(temp_dir, "python_udtfs"))

    result = runner.invoke(udtf_app, ["list", "--project-dir", temp_dir, "--plain"])

    assert result.exit_code == 0
    assert "No Python UDTFs found in the project" in result.stdout


def test_info_plain(sample_project):
    result = runner.invoke(
        udtf_app, ["info", "sum_and_count", "--project-dir", sample_project, "--plain"]
    )

    assert result.exit_code == 0
    assert "UDTF: sum_and_count" in result.stdout
    assert "Type: table" in result.stdout
    assert "Stateful: yes" in result.stdout
    assert (
        "Signature: sum_and_count(input_table TABLE) "
        "RETURNS TABLE(total INTEGER, row_count INTEGER)"
    ) in result.stdout


def test_info_not_found(sample_project):
    result = runner.invoke(
        udtf_app, ["info", "nope", "--project-dir", sample_project, "--plain"]
    )

    assert result.exit_code == 1
    assert "UDTF 'nope' not found" in result.stdout


def test_call_scalar_plain(sample_project):
    result = runner.invoke(
        udtf_app,
        ["call", "generate_range", "1", "3", "--project-dir", sample_project, "--plain"],
    )

    assert result.exit_code == 0
    assert result.stdout.splitlines() == [
        "n\tsquare\tcube",
        "1\t1\t1",
        "2\t4\t8",
        "3\t9\t27",
    ]


def test_call_scalar_rich(sample_project):
    result = runner.invoke(
        udtf_app, ["call", "split_words", "hello world", "--project-dir", sample_project]
    )

    assert result.exit_code == 0
    assert "hello" in result.stdout
    assert "2 row(s)" in result.stdout


def test_call_with_table_and_partition(sample_project, data_csv):
    result = runner.invoke(
        udtf_app,
        [
            "call",
            "count_rows",
            "--table",
            data_csv,
            "--partition-by",
            "id",
            "--project-dir",
            sample_project,
            "--plain",
        ],
    )

    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["row_count", "1", "1", "1"]


def test_call_with_constant_partition(sample_project, data_csv):
    result = runner.invoke(
        udtf_app,
        [
            "call",
            "sum_and_count",
            "--table",
            data_csv,
            "--partition-by",
            "1",
            "--project-dir",
            sample_project,
            "--plain",
        ],
    )

    assert result.exit_code == 0
    assert result.stdout.splitlines() == ["total\trow_count", "60\t3"]


@pytest.mark.parametrize(
    "args,message",
    [
        (["call", "nope"], "not found in the project"),
        (["call", "generate_range", "1"], "expects 2 argument(s)"),
        (["call", "generate_range", "one", "2"], "Cannot convert 'one'"),
        (["call", "count_rows"], "requires a TABLE argument"),
        (
            ["call", "generate_range", "1", "2", "--partition-by", "id"],
            "--partition-by requires --table",
        ),
        (["call", "simple_ip_check", "not-an-ip"], "Row processing"),
    ],
)
def test_call_errors(sample_project, args, message):
    result = runner.invoke(
        udtf_app, args + ["--project-dir", sample_project, "--plain"]
    )

    assert result.exit_code == 1
    assert "Failed to run UDTF" in result.stdout
    assert message in result.stdout


def test_call_missing_csv(sample_project, temp_dir):
    result = runner.invoke(
        udtf_app,
        [
            "call",
            "count_rows",
            "--table",
            os.path.join(temp_dir, "missing.csv"),
            "--project-dir",
            sample_project,
            "--plain",
        ],
    )

    assert result.exit_code == 1
    assert "CSV file not found" in result.stdout


def test_call_respects_profile(sample_project, data_csv):
    result = runner.invoke(
        udtf_app,
        [
            "call",
            "count_rows",
            "--table",
            data_csv,
            "--profile",
            "scalar_only",
            "--project-dir",
            sample_project,
            "--plain",
        ],
    )

    # count_rows cannot be registered without table-argument support
    assert result.exit_code == 1
    assert "Failed to run UDTF" in result.stdout


def test_partition_key_parsing():
    assert _partition_key(["id", "1", "region"]) == ["id", Literal(1), "region"]


def test_main_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "udtflow CLI v0.1.0" in result.stdout


def test_main_dispatches_to_udtf_commands(sample_project):
    result = runner.invoke(
        app, ["-q", "udtf", "list", "--project-dir", sample_project, "--plain"]
    )

    assert result.exit_code == 0
    assert "split_words (scalar)" in result.stdout
