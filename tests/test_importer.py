#!/usr/bin/env python3
"""Tests for replaying export files through the batching importer."""
import gzip
import os
import tempfile
import unittest
from unittest import mock

from influxcli.core.errors import ImportSourceError, PermanentServerError, TransientServerError
from influxcli.core.importer import ImportConfig, Importer, run_import
from influxcli.core.result import QueryResult, StatementResult
from influxcli.core.session import Consistency, Precision, Session

EXPORT = """\
# DDL
CREATE DATABASE foo
CREATE RETENTION POLICY oneday ON foo DURATION 1d REPLICATION 1
# DML
# CONTEXT-DATABASE: foo
# CONTEXT-RETENTION-POLICY: oneday
cpu,host=a value=1 1
cpu,host=b value=2 2
not a valid line
mem free=3i 3
"""


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakeClient:
    """Records calls; ``write_errors`` are raised by successive write attempts."""

    def __init__(self, write_errors=None, query_error=None):
        self.write_errors = list(write_errors or [])
        self.query_error = query_error
        self.writes = []
        self.attempts = 0
        self.queries = []

    def write_batch(self, database, retention_policy, lines, consistency=Consistency.ALL,
                    precision=Precision.NS):
        self.attempts += 1
        if self.write_errors:
            err = self.write_errors.pop(0)
            if err is not None:
                raise err
        self.writes.append((database, retention_policy, list(lines), consistency, precision))

    def execute_query(self, database, query, epoch='ns'):
        self.queries.append((database, query))
        return QueryResult(results=(StatementResult(statement_id=0, error=self.query_error),))


class TimedClient(FakeClient):
    """Records the clock time and size of every write attempt, failed or not."""

    def __init__(self, clock, **kwargs):
        super().__init__(**kwargs)
        self.clock = clock
        self.sent = []

    def write_batch(self, database, retention_policy, lines, consistency=Consistency.ALL,
                    precision=Precision.NS):
        self.sent.append((self.clock.now, len(lines)))
        super().write_batch(database, retention_policy, lines, consistency, precision)


class InterruptingSource:
    """Byte-line source that raises KeyboardInterrupt once its lines run out."""

    def __init__(self, lines):
        self.lines = lines

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def __iter__(self):
        for line in self.lines:
            yield line
        raise KeyboardInterrupt()


class ImporterTestCase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.clock = FakeClock()

    def tearDown(self):
        self.temp_dir.cleanup()

    def _write(self, content, name="export.txt", compressed=False):
        path = os.path.join(self.temp_dir.name, name)
        if compressed:
            with gzip.open(path, 'wt', encoding='utf-8') as f:
                f.write(content)
        else:
            with open(path, 'w', encoding='utf-8') as f:
                f.write(content)
        return path

    def _run(self, client, path, **kwargs):
        config = ImportConfig(path=path, **kwargs)
        return Importer(client, config, clock=self.clock.clock, sleep=self.clock.sleep).run()


class TestSections(ImporterTestCase):

    def test_ddl_and_dml_sections(self):
        client = FakeClient()
        summary = self._run(client, self._write(EXPORT))
        self.assertEqual([q for _, q in client.queries], [
            "CREATE DATABASE foo",
            "CREATE RETENTION POLICY oneday ON foo DURATION 1d REPLICATION 1",
        ])
        self.assertEqual(len(client.writes), 1)
        database, rp, lines, _, _ = client.writes[0]
        self.assertEqual((database, rp), ("foo", "oneday"))
        self.assertEqual(lines, ["cpu,host=a value=1 1", "cpu,host=b value=2 2", "mem free=3i 3"])
        self.assertEqual(summary.commands_executed, 2)
        self.assertEqual(summary.points_written, 3)
        self.assertEqual(summary.lines_skipped, 1)
        self.assertEqual(summary.lines_read, 10)
        self.assertTrue(summary.ok)
        self.assertIn("Processed 3 inserts", summary.report_lines())
        self.assertIn("Skipped 1 malformed lines", summary.report_lines())

    def test_lines_outside_sections_use_session_target(self):
        client = FakeClient()
        path = self._write("cpu value=1 1\ncpu value=2 2\n")
        summary = self._run(client, path, database="mydb", retention_policy="autogen",
                            consistency=Consistency.ONE, precision=Precision.S)
        self.assertEqual(client.writes[0][:2], ("mydb", "autogen"))
        self.assertEqual(client.writes[0][3:], (Consistency.ONE, Precision.S))
        self.assertEqual(summary.points_written, 2)

    def test_context_change_flushes_batch(self):
        client = FakeClient()
        content = "# DML\n# CONTEXT-DATABASE: a\ncpu value=1\n# CONTEXT-DATABASE: b\ncpu value=2\n"
        self._run(client, self._write(content))
        self.assertEqual([(w[0], w[2]) for w in client.writes], [("a", ["cpu value=1"]), ("b", ["cpu value=2"])])

    def test_failed_command_counted(self):
        client = FakeClient(query_error="database already exists")
        summary = self._run(client, self._write("# DDL\nCREATE DATABASE foo\n"))
        self.assertEqual(summary.commands_failed, 1)
        self.assertEqual(summary.commands_executed, 0)
        self.assertFalse(summary.ok)
        self.assertEqual(len(client.queries), 1)


class TestBatching(ImporterTestCase):

    def test_batch_point_limit(self):
        client = FakeClient()
        content = "".join(f"cpu value={i} {i}\n" for i in range(7))
        summary = self._run(client, self._write(content), batch_points=3)
        self.assertEqual([len(w[2]) for w in client.writes], [3, 3, 1])
        self.assertEqual(summary.batches_sent, 3)

    def test_batch_byte_limit(self):
        client = FakeClient()
        content = "cpu value=1 1\ncpu value=2 2\ncpu value=3 3\n"
        self._run(client, self._write(content), batch_bytes=30)
        self.assertEqual([len(w[2]) for w in client.writes], [2, 1])

    def test_pps_throttles_batches(self):
        client = FakeClient()
        content = "".join(f"cpu value={i} {i}\n" for i in range(5))
        summary = self._run(client, self._write(content), pps=2)
        self.assertEqual([len(w[2]) for w in client.writes], [2, 2, 1])
        self.assertGreaterEqual(self.clock.now, 2.0)
        self.assertEqual(summary.points_written, 5)


class TestRetries(ImporterTestCase):

    def test_transient_failures_then_success(self):
        errors = [TransientServerError("unavailable", status_code=503)] * 4
        client = FakeClient(write_errors=errors)
        summary = self._run(client, self._write("cpu value=1 1\ncpu value=2 2\n"))
        self.assertEqual(client.attempts, 5)
        self.assertEqual(summary.points_written, 2)
        self.assertEqual(summary.points_failed, 0)
        self.assertEqual(self.clock.sleeps, [0.5, 1.0, 2.0, 4.0])
        self.assertTrue(summary.ok)

    def test_retries_exhausted(self):
        errors = [TransientServerError("timeout")] * 10
        client = FakeClient(write_errors=errors)
        summary = self._run(client, self._write("cpu value=1 1\n"))
        self.assertEqual(client.attempts, 5)
        self.assertEqual(summary.points_failed, 1)
        self.assertEqual(summary.batches_failed, 1)
        self.assertFalse(summary.ok)

    def test_backoff_capped(self):
        errors = [TransientServerError("timeout")] * 10
        client = FakeClient(write_errors=errors)
        self._run(client, self._write("cpu value=1 1\n"), retry_limit=8)
        self.assertEqual(self.clock.sleeps, [0.5, 1.0, 2.0, 4.0, 8.0, 8.0, 8.0])

    def test_permanent_failure_moves_on(self):
        client = FakeClient(write_errors=[PermanentServerError("partial write", status_code=400), None])
        summary = self._run(client, self._write("cpu value=1 1\ncpu value=2 2\n"), batch_points=1)
        self.assertEqual(client.attempts, 2)
        self.assertEqual(summary.points_failed, 1)
        self.assertEqual(summary.points_written, 1)
        self.assertEqual(self.clock.sleeps, [])

    def test_interrupt_reports_partial_progress(self):
        client = FakeClient(write_errors=[None, KeyboardInterrupt()])
        content = "cpu value=1 1\ncpu value=2 2\ncpu value=3 3\n"
        summary = self._run(client, self._write(content), batch_points=1)
        self.assertTrue(summary.interrupted)
        self.assertEqual(summary.points_written, 1)
        self.assertEqual(summary.points_failed, 1)
        self.assertEqual(summary.batches_failed, 1)
        self.assertFalse(summary.ok)

    def test_interrupt_counts_pending_batch(self):
        client = FakeClient()
        with mock.patch('influxcli.core.importer.open_source',
                        return_value=InterruptingSource([b"cpu value=1 1\n", b"cpu value=2 2\n"])):
            summary = self._run(client, "unused.txt")
        self.assertTrue(summary.interrupted)
        self.assertEqual(client.writes, [])
        self.assertEqual(summary.points_failed, 2)
        self.assertEqual(summary.lines_read, 2)

    def test_retried_batch_stays_within_window(self):
        client = TimedClient(self.clock, write_errors=[TransientServerError("timeout"), None])
        content = "".join(f"cpu value={i} {i}\n" for i in range(10))
        summary = self._run(client, self._write(content), pps=10)
        self.assertEqual(summary.points_written, 10)
        self.assertEqual(len(client.sent), 2)
        for t, _ in client.sent:
            in_window = sum(n for ts, n in client.sent if t - 1.0 < ts <= t)
            self.assertLessEqual(in_window, 10)
        self.assertGreaterEqual(client.sent[1][0], 1.0)


class TestSources(ImporterTestCase):

    def test_gzip_source(self):
        client = FakeClient()
        path = self._write(EXPORT, name="export.gz", compressed=True)
        summary = self._run(client, path, compressed=True)
        self.assertEqual(summary.points_written, 3)

    def test_invalid_gzip_fails_before_writes(self):
        client = FakeClient()
        path = self._write(EXPORT)
        with self.assertRaises(ImportSourceError):
            self._run(client, path, compressed=True)
        self.assertEqual(client.writes, [])
        self.assertEqual(client.queries, [])

    def test_undecodable_line_skipped(self):
        client = FakeClient()
        path = os.path.join(self.temp_dir.name, "latin1.txt")
        with open(path, 'wb') as f:
            f.write(b"cpu,host=\xff\xfe value=1 1\ncpu,host=a value=2 2\n")
        summary = self._run(client, path, database="mydb")
        self.assertEqual(client.writes[0][2], ["cpu,host=a value=2 2"])
        self.assertEqual(summary.lines_skipped, 1)
        self.assertEqual(summary.points_written, 1)

    def test_missing_file(self):
        client = FakeClient()
        with self.assertRaises(ImportSourceError):
            self._run(client, os.path.join(self.temp_dir.name, "nope.txt"))
        self.assertEqual(client.attempts, 0)

    def test_run_import_uses_session_snapshot(self):
        session = Session(database="metrics", consistency="quorum", pps=0)
        client = FakeClient()
        summary = run_import(client, session.snapshot(), self._write("cpu value=1 1\n"))
        self.assertEqual(client.writes[0][0], "metrics")
        self.assertIs(client.writes[0][3], Consistency.QUORUM)
        self.assertEqual(summary.points_written, 1)


if __name__ == "__main__":
    unittest.main()
