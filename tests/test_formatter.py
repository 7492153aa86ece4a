#!/usr/bin/env python3
"""Tests for column, CSV and JSON rendering of query results."""
import json
import unittest

from influxcli.core.formatter import render
from influxcli.core.result import QueryResult
from influxcli.core.session import OutputFormat, Precision


def _payload():
    return {
        "results": [{
            "statement_id": 0,
            "series": [
                {
                    "name": "cpu",
                    "tags": {"host": "a"},
                    "columns": ["time", "value"],
                    "values": [[1500000000000000000, 0.5], [1500000001000000000, None]],
                },
                {
                    "name": "cpu",
                    "tags": {"host": "b"},
                    "columns": ["time", "value"],
                    "values": [[1500000002000000000, 1.5]],
                },
            ],
        }]
    }


class TestColumnFormat(unittest.TestCase):

    def test_table_layout(self):
        result = QueryResult.from_response(_payload())
        text = render(result, OutputFormat.COLUMN, Precision.S)
        expected = "\n".join([
            "name: cpu",
            "tags: host=a",
            "time        value",
            "----        -----",
            "1500000000  0.5",
            "1500000001",
            "",
            "name: cpu",
            "tags: host=b",
            "time        value",
            "----        -----",
            "1500000002  1.5",
        ])
        self.assertEqual(text, expected)

    def test_empty_result(self):
        result = QueryResult.from_response({"results": [{"statement_id": 0}]})
        self.assertEqual(render(result, 'column'), '')


class TestCSVFormat(unittest.TestCase):

    def test_header_written_once_per_shape(self):
        result = QueryResult.from_response(_payload())
        text = render(result, 'csv', 'ms')
        self.assertEqual(text.splitlines(), [
            "host,time,value",
            "a,1500000000000,0.5",
            "a,1500000001000,",
            "b,1500000002000,1.5",
        ])

    def test_rfc3339_times(self):
        result = QueryResult.from_response(_payload())
        first_row = render(result, OutputFormat.CSV, Precision.RFC3339).splitlines()[1]
        self.assertEqual(first_row, "a,2017-07-14T02:40:00Z,0.5")


class TestJSONFormat(unittest.TestCase):

    def test_pretty_and_compact_parse_identically(self):
        result = QueryResult.from_response(_payload())
        compact = render(result, OutputFormat.JSON, Precision.NS, pretty=False)
        pretty = render(result, OutputFormat.JSON, Precision.NS, pretty=True)
        self.assertNotIn("\n", compact)
        self.assertIn("\n    ", pretty)
        self.assertEqual(json.loads(compact), json.loads(pretty))

    def test_document_shape(self):
        result = QueryResult.from_response(_payload())
        doc = json.loads(render(result, 'json', 'rfc3339'))
        self.assertEqual(doc["statement_id"], 0)
        self.assertEqual(doc["series"][0]["tags"], {"host": "a"})
        self.assertEqual(doc["series"][0]["values"][0], ["2017-07-14T02:40:00Z", 0.5])
        self.assertIsNone(doc["series"][0]["values"][1][1])

    def test_statement_error_included(self):
        payload = {"results": [{"statement_id": 0, "error": "database not found: nope"}]}
        doc = json.loads(render(QueryResult.from_response(payload), 'json'))
        self.assertEqual(doc["error"], "database not found: nope")
        self.assertEqual(doc["series"], [])


class TestRenderArguments(unittest.TestCase):

    def test_unknown_format(self):
        with self.assertRaises(ValueError):
            render(QueryResult(), 'xml')


if __name__ == "__main__":
    unittest.main()
