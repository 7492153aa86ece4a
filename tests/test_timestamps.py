#!/usr/bin/env python3
"""Tests for timestamp precision conversion."""
import unittest

from influxcli.core.session import Precision
from influxcli.core.timestamps import (
    DIVISORS, convert_timestamp, format_rfc3339, parse_rfc3339, to_nanoseconds,
)

SAMPLE_NS = 1_500_000_000_123_456_789


class TestEpochPrecision(unittest.TestCase):
    """Integer precisions truncate towards the lower unit boundary."""

    def test_round_trip_within_granularity(self):
        for precision in (Precision.H, Precision.M, Precision.S, Precision.MS, Precision.U, Precision.NS):
            converted = convert_timestamp(SAMPLE_NS, precision)
            back = to_nanoseconds(converted, precision)
            self.assertLessEqual(back, SAMPLE_NS, precision)
            self.assertLess(SAMPLE_NS - back, DIVISORS[precision], precision)

    def test_known_values(self):
        self.assertEqual(convert_timestamp(SAMPLE_NS, 'ms'), 1_500_000_000_123)
        self.assertEqual(convert_timestamp(SAMPLE_NS, 'u'), 1_500_000_000_123_456)
        self.assertEqual(convert_timestamp(SAMPLE_NS, 's'), 1_500_000_000)
        self.assertEqual(convert_timestamp(2 * 3600 * 10**9 + 5, 'h'), 2)
        self.assertEqual(convert_timestamp(SAMPLE_NS, 'ns'), SAMPLE_NS)

    def test_negative_values_floor(self):
        self.assertEqual(convert_timestamp(-1, Precision.S), -1)

    def test_non_integer_values_pass_through(self):
        self.assertIsNone(convert_timestamp(None, Precision.MS))
        self.assertEqual(convert_timestamp('2017-07-14T02:40:00Z', Precision.MS), '2017-07-14T02:40:00Z')
        self.assertIs(convert_timestamp(True, Precision.MS), True)


class TestRFC3339(unittest.TestCase):
    """RFC3339 text is an exact representation of the nanosecond value."""

    def test_epoch_zero(self):
        self.assertEqual(format_rfc3339(0), '1970-01-01T00:00:00Z')

    def test_trailing_zeros_trimmed(self):
        self.assertEqual(format_rfc3339(1_500_000_000_123_000_000), '2017-07-14T02:40:00.123Z')
        self.assertEqual(format_rfc3339(1_500_000_000_000_000_000), '2017-07-14T02:40:00Z')

    def test_exact_round_trip(self):
        for ns in (0, 1, SAMPLE_NS, 1_500_000_000_000_000_001, 86_400 * 10**9 - 1):
            text = convert_timestamp(ns, Precision.RFC3339)
            self.assertTrue(text.endswith('Z'))
            self.assertEqual(parse_rfc3339(text), ns)
            self.assertEqual(to_nanoseconds(text, 'rfc3339'), ns)


if __name__ == "__main__":
    unittest.main()
