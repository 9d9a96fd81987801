"""Tests for TableFunctionRuntime against the documented examples."""

import threading

import pandas as pd
import pytest

from udtflow import lit, table
from udtflow.config import RuntimeConfig
from udtflow.core.capabilities import Capability
from udtflow.core.runtime import TableFunctionRuntime
from udtflow.exceptions import (
    HandlerRowError,
    InvalidArgumentError,
    InvalidPartitionKeyError,
    InvocationCancelledError,
    NotFoundError,
    TableNotFoundError,
    UnsupportedFeatureError,
)


def test_generate_range_rows(runtime):
    """generate_range(1, 5) yields (n, n*n, n*n*n) in ascending order."""
    result = runtime.call("generate_range", 1, 5)

    assert result.columns == ["n", "square", "cube"]
    assert result.rows == [
        (1, 1, 1),
        (2, 4, 8),
        (3, 9, 27),
        (4, 16, 64),
        (5, 25, 125),
    ]


@pytest.mark.parametrize("start,stop", [(0, 0), (-3, 2), (7, 20)])
def test_generate_range_cardinality(runtime, start, stop):
    result = runtime.call("generate_range", start, stop)

    assert len(result) == stop - start + 1
    assert [row[0] for row in result] == list(range(start, stop + 1))
    assert all(row == (row[0], row[0] ** 2, row[0] ** 3) for row in result)


def test_generate_range_empty_when_start_after_stop(runtime):
    assert runtime.call("generate_range", 5, 1).rows == []


def test_count_rows_without_partition_key(runtime):
    """No PARTITION BY forms exactly one partition over all rows."""
    result = runtime.call_table("count_rows", "simple_data")

    assert result.columns == ["row_count"]
    assert result.rows == [(3,)]


def test_count_rows_partition_by_unique_id(runtime):
    """PARTITION BY a unique column gives one partition per row."""
    result = runtime.call_table("count_rows", "simple_data", partition_by=["id"])

    assert result.rows == [(1,), (1,), (1,)]


def test_sum_and_count_partition_by_constant(runtime):
    """PARTITION BY (1) aggregates over every row."""
    result = runtime.call_table("sum_and_count", "simple_data", partition_by=[lit(1)])

    assert result.columns == ["total", "row_count"]
    assert result.rows == [(60, 3)]
    assert isinstance(result.rows[0][0], int)


def test_plain_constant_partition_key_is_a_literal(runtime):
    result = runtime.call_table("count_rows", "simple_data", partition_by=[1])

    assert result.rows == [(3,)]


def test_partition_by_repeated_key_groups_rows(runtime):
    df = pd.DataFrame({"grp": ["a", "b", "a", "a", "b"], "value": [1, 2, 3, 4, 5]})

    result = runtime.call_table("sum_and_count", df, partition_by=["grp"])

    # Partitions follow the first appearance of each key
    assert result.rows == [(8, 3), (7, 2)]


def test_partition_by_is_case_insensitive(runtime):
    result = runtime.call_table("count_rows", "simple_data", partition_by=["ID"])

    assert len(result) == 3


def test_invalid_partition_key(runtime):
    with pytest.raises(InvalidPartitionKeyError) as excinfo:
        runtime.call_table("count_rows", "simple_data", partition_by=["missing"])

    assert excinfo.value.column == "missing"
    assert excinfo.value.available == ["id", "value"]


def test_table_argument_forms(runtime, simple_data):
    by_name = runtime.call_table("count_rows", "simple_data")
    by_ref = runtime.call_table("count_rows", table("simple_data"))
    by_frame = runtime.call_table("count_rows", simple_data)

    assert by_name == by_ref == by_frame


def test_empty_table_without_partition_key_still_terminates(runtime):
    empty = pd.DataFrame({"id": pd.Series([], dtype="int64")})

    assert runtime.call_table("count_rows", empty).rows == [(0,)]
    assert runtime.call_table("count_rows", empty, partition_by=["id"]).rows == []


def test_lateral_simple_ip_check(runtime):
    ips = pd.DataFrame({"ip": ["192.168.1.1", "8.8.8.8"]})

    result = runtime.lateral(ips, "simple_ip_check", ["ip"], alias="chk")

    assert result.columns == ["ip", "is_private"]
    assert result.rows == [("192.168.1.1", True), ("8.8.8.8", False)]


def test_lateral_drops_outer_rows_without_output(runtime):
    texts = pd.DataFrame({"id": [1, 2, 3], "text": ["Hello World", "", "Apache Spark"]})

    result = runtime.lateral(texts, "split_words", ["text"])

    assert result.rows == [
        (1, "Hello World", "Hello"),
        (1, "Hello World", "World"),
        (3, "Apache Spark", "Apache"),
        (3, "Apache Spark", "Spark"),
    ]


def test_lateral_prefixes_colliding_columns(runtime):
    outer = pd.DataFrame({"n": [2]})

    result = runtime.lateral(outer, "generate_range", ["n", 3], alias="r")

    assert result.columns == ["n", "r_n", "square", "cube"]
    assert result.rows == [(2, 2, 4, 8), (2, 3, 9, 27)]


def test_lateral_prefixed_column_stays_unique(runtime):
    outer = pd.DataFrame({"n": [2], "r_n": [0]})

    result = runtime.lateral(outer, "generate_range", ["n", 2], alias="r")

    assert result.columns == ["n", "r_n", "r_n_1", "square", "cube"]
    assert result.rows == [(2, 0, 2, 4, 8)]
    assert result.to_pandas()["r_n_1"].tolist() == [2]


def test_lateral_uses_definition_resolved_at_start(runtime):
    def replacement(n):
        yield (n, "new")

    def original(n):
        runtime.define("echo", "n INT", "n INT, tag STRING", replacement)
        yield (n * 10,)

    runtime.define("echo", "n INT", "value INT", original)
    outer = pd.DataFrame({"n": [1, 2, 3]})

    result = runtime.lateral(outer, "echo", ["n"])

    assert result.columns == ["n", "value"]
    assert result.rows == [(1, 10), (2, 20), (3, 30)]
    assert runtime.resolve("echo").column_names == ["n", "tag"]


def test_lateral_unknown_column(runtime):
    with pytest.raises(InvalidArgumentError):
        runtime.lateral(pd.DataFrame({"ip": ["1.1.1.1"]}), "simple_ip_check", ["addr"])


def test_pure_function_is_idempotent(runtime):
    first = runtime.call("generate_range", 3, 9)
    second = runtime.call("generate_range", 3, 9)

    assert first == second


def test_partition_isolation_for_stateful_handler(runtime):
    class Accumulate:
        def __init__(self):
            self.seen = []

        def eval(self, row):
            self.seen.append(row.value)

        def terminate(self):
            yield (len(self.seen), sum(self.seen))

    runtime.define(
        "accumulate", ["TABLE"], "seen INT, total INT", Accumulate
    )
    df = pd.DataFrame({"k": [1, 2, 1, 3, 2], "value": [1, 10, 100, 1000, 10000]})

    result = runtime.call_table("accumulate", df, partition_by=["k"])

    assert result.rows == [(2, 101), (2, 10010), (1, 1000)]


def test_class_handler_with_static_eval(runtime):
    class Words:
        @staticmethod
        def eval(text):
            for word in text.split():
                yield (word,)

    runtime.define("words", "text STRING", "word STRING", Words)

    assert runtime.call("words", "a b").rows == [("a",), ("b",)]


def test_parallel_dispatch_matches_sequential(runtime, parallel_runtime):
    df = pd.DataFrame({"grp": [i % 7 for i in range(100)], "value": list(range(100))})

    sequential = runtime.call_table("sum_and_count", df, partition_by=["grp"])
    parallel = parallel_runtime.call_table("sum_and_count", df, partition_by=["grp"])

    assert sequential == parallel


def test_unknown_function(runtime):
    with pytest.raises(NotFoundError) as excinfo:
        runtime.call("does_not_exist")

    assert "generate_range" in excinfo.value.available


def test_unknown_table(runtime):
    with pytest.raises(TableNotFoundError):
        runtime.call_table("count_rows", "no_such_table")


def test_scalar_call_to_table_function_is_rejected(runtime):
    with pytest.raises(InvalidArgumentError):
        runtime.call("count_rows")


def test_table_call_to_scalar_function_is_rejected(runtime):
    with pytest.raises(InvalidArgumentError):
        runtime.call_table("generate_range", "simple_data", 1, 2)


def test_argument_type_checked(runtime):
    with pytest.raises(InvalidArgumentError):
        runtime.call("generate_range", "1", 5)


def test_row_failure_fails_invocation(runtime):
    with pytest.raises(HandlerRowError) as excinfo:
        runtime.call("simple_ip_check", "not-an-ip")

    assert excinfo.value.row_ordinal == 0
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_cancelled_invocation(runtime):
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(InvocationCancelledError):
        runtime.call_table(
            "count_rows", "simple_data", partition_by=["id"], cancel_event=cancel
        )


def test_redefinition_replaces_function(runtime):
    def constant(start, stop):
        yield (0, 0, 0)

    runtime.define("generate_range", "start INT, stop INT", "n INT, square INT, cube INT", constant)

    assert runtime.call("generate_range", 1, 5).rows == [(0, 0, 0)]


def test_stats_are_recorded(runtime):
    runtime.call("generate_range", 1, 3)
    runtime.call_table("count_rows", "simple_data", partition_by=["id"])
    with pytest.raises(NotFoundError):
        runtime.call("missing")

    stats = runtime.get_stats()
    assert stats["invocations"] == 3
    assert stats["failed_invocations"] == 1
    assert stats["partitions"] == 4
    assert stats["rows_out"] == 6

    runtime.reset_stats()
    assert runtime.get_stats()["invocations"] == 0


def test_scalar_only_revision(sample_udtfs):
    with TableFunctionRuntime(RuntimeConfig(platform_revision="1")) as rt:
        assert rt.supports(Capability.SCALAR_TABLE_FUNCTIONS)
        assert not rt.supports(Capability.TABLE_ARGUMENT_FUNCTIONS)

        rt.register(sample_udtfs["generate_range"])
        assert len(rt.call("generate_range", 1, 2)) == 2

        with pytest.raises(UnsupportedFeatureError):
            rt.register(sample_udtfs["count_rows"])


def test_results_convert_to_pandas(runtime):
    df = runtime.call("generate_range", 1, 3).to_pandas()

    assert list(df.columns) == ["n", "square", "cube"]
    assert df["cube"].tolist() == [1, 8, 27]


def test_csv_table_argument(runtime, temp_dir):
    path = f"{temp_dir}/orders.csv"
    with open(path, "w") as f:
        f.write("region,value\nnorth,5\nsouth,7\nnorth,1\n")

    runtime.load_csv("orders", path)
    result = runtime.call_table("sum_and_count", "orders", partition_by=["region"])

    assert result.rows == [(6, 2), (7, 1)]
