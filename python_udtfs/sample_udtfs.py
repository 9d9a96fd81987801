"""Sample UDTFs for udtflow.

These mirror the table functions used throughout the documentation:

    SELECT * FROM generate_range(1, 5);
    SELECT * FROM count_rows(TABLE(simple_data));
    SELECT * FROM sum_and_count(TABLE(simple_data) PARTITION BY (1));
    SELECT * FROM ips, LATERAL simple_ip_check(ips.ip) chk;
"""

import ipaddress

from udtflow import udtf


@udtf(
    output_schema="n INT, square INT, cube INT",
    input_types=[("start", "INT"), ("stop", "INT")],
)
def generate_range(start, stop):
    """Yield n, n squared and n cubed for every n from start to stop."""
    for n in range(start, stop + 1):
        yield (n, n * n, n * n * n)


@udtf(output_schema="word STRING", input_types=[("text", "STRING")])
def split_words(text):
    """Split a string on whitespace, one word per row."""
    if text is None:
        return
    for word in text.split():
        yield (word,)


@udtf(output_schema={"is_private": "BOOLEAN"}, input_types=[("ip", "STRING")])
def simple_ip_check(ip):
    """Check whether an IPv4/IPv6 address is in a private range."""
    yield (ipaddress.ip_address(ip).is_private,)


@udtf(
    name="count_rows",
    output_schema="row_count INT",
    input_types=[("input_table", "TABLE")],
)
class CountRows:
    """Count the rows of each partition."""

    def __init__(self):
        self.count = 0

    def eval(self, row):
        self.count += 1

    def terminate(self):
        yield (self.count,)


@udtf(
    name="sum_and_count",
    output_schema="total INT, row_count INT",
    input_types=[("input_table", "TABLE")],
)
class SumAndCount:
    """Sum the ``value`` column and count the rows of each partition."""

    def __init__(self):
        self.total = 0
        self.count = 0

    def eval(self, row):
        value = row["value"]
        if value is not None:
            self.total += value
        self.count += 1

    def terminate(self):
        yield (self.total, self.count)
