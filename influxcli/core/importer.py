"""Replay an exported database file into the server.

Export layout: optional ``# DDL`` section whose lines are executed as queries,
then ``# DML`` with ``# CONTEXT-DATABASE:`` / ``# CONTEXT-RETENTION-POLICY:``
directives followed by write-protocol lines. Lines outside any section are
written to the session's current database. Writes are batched, throttled to
the configured points per second and retried on transient failures.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, auto
from typing import BinaryIO, Callable, List, Optional
import gzip
import logging
import time
import zlib

from influxcli.core.errors import (
    ImportSourceError, LineParseError, PermanentServerError, TransientServerError,
)
from influxcli.core.line_protocol import parse_line
from influxcli.core.rate_limiter import SlidingWindowLimiter
from influxcli.core.session import Consistency, Precision, SessionSnapshot
from influxcli.utils.constants import (
    CONTEXT_DATABASE, CONTEXT_RETENTION_POLICY, DDL_MARKER, DML_MARKER,
    MAX_BATCH_BYTES, MAX_BATCH_POINTS, PROGRESS_EVERY_LINES,
    RETRY_BACKOFF_INITIAL, RETRY_BACKOFF_MAX, WRITE_RETRY_LIMIT,
)
from influxcli.utils.validation import validate_import_path

logger = logging.getLogger(__name__)

DECODE_ERRORS = (OSError, EOFError, zlib.error)


class Section(Enum):
    NONE = auto()
    DDL = auto()
    DML = auto()


@dataclass(frozen=True)
class ImportConfig:
    path: str
    compressed: bool = False
    pps: int = 0
    database: str = ''
    retention_policy: str = ''
    consistency: Consistency = Consistency.ALL
    precision: Precision = Precision.NS
    batch_points: int = MAX_BATCH_POINTS
    batch_bytes: int = MAX_BATCH_BYTES
    retry_limit: int = WRITE_RETRY_LIMIT
    backoff_initial: float = RETRY_BACKOFF_INITIAL
    backoff_max: float = RETRY_BACKOFF_MAX

    @classmethod
    def from_session(cls, snapshot: SessionSnapshot, path: str, compressed: bool = False,
                     pps: Optional[int] = None) -> "ImportConfig":
        return cls(
            path=path,
            compressed=compressed,
            pps=snapshot.pps if pps is None else pps,
            database=snapshot.database,
            retention_policy=snapshot.retention_policy,
            consistency=snapshot.consistency,
            precision=snapshot.precision,
        )

    def effective_batch_points(self) -> int:
        # A single batch must fit in one throttle window
        if self.pps > 0:
            return max(1, min(self.batch_points, self.pps))
        return max(1, self.batch_points)


@dataclass(frozen=True)
class ImportSummary:
    lines_read: int
    points_written: int
    points_failed: int
    lines_skipped: int
    batches_sent: int
    batches_failed: int
    commands_executed: int
    commands_failed: int
    elapsed: float
    interrupted: bool = False

    @property
    def throughput(self) -> float:
        return self.points_written / self.elapsed if self.elapsed > 0 else float(self.points_written)

    @property
    def ok(self) -> bool:
        return not (self.points_failed or self.commands_failed or self.interrupted)

    def report_lines(self) -> List[str]:
        lines = [
            f"Processed {self.commands_executed} commands",
            f"Processed {self.points_written} inserts",
            f"Failed {self.points_failed} inserts",
            f"Skipped {self.lines_skipped} malformed lines",
            f"Read {self.lines_read} lines in {self.elapsed:.3f}s ({self.throughput:.0f} points/s)",
        ]
        if self.commands_failed:
            lines.insert(1, f"Failed {self.commands_failed} commands")
        if self.interrupted:
            lines.append("Import interrupted; counts reflect partial progress")
        return lines


def open_source(path: str, compressed: bool) -> BinaryIO:
    """Open the export as bytes, validating gzip framing up front.

    Lines are decoded one at a time by the importer so an undecodable line is
    skipped instead of being rewritten.
    """
    validate_import_path(path)
    try:
        raw = gzip.open(path, 'rb') if compressed else open(path, 'rb')
    except OSError as e:
        raise ImportSourceError(f"unable to open {path}: {e}") from e
    if compressed:
        try:
            raw.peek(1)
        except DECODE_ERRORS as e:
            raw.close()
            raise ImportSourceError(f"unable to decompress {path}: {e}") from e
    return raw


class Importer:
    """Sequential batch writer; batch N+1 waits for batch N's outcome."""

    def __init__(self, client, config: ImportConfig,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.config = config
        self.clock = clock
        self.sleep = sleep
        self.limiter = SlidingWindowLimiter(config.pps, clock=clock, sleep=sleep)
        self.batch_limit = config.effective_batch_points()
        self.section = Section.NONE
        self.database = config.database
        self.retention_policy = config.retention_policy
        self._batch: List[str] = []
        self._batch_size = 0
        self.lines_read = 0
        self.points_written = 0
        self.points_failed = 0
        self.lines_skipped = 0
        self.batches_sent = 0
        self.batches_failed = 0
        self.commands_executed = 0
        self.commands_failed = 0
        self._started = 0.0

    def run(self) -> ImportSummary:
        """Import the whole source; ImportSourceError if it cannot be read."""
        stream = open_source(self.config.path, self.config.compressed)
        logger.info("Importing %s (compressed=%s, pps=%s)", self.config.path,
                    self.config.compressed, self.config.pps or 'unlimited')
        self._started = self.clock()
        interrupted = False
        try:
            with stream:
                for raw_line in stream:
                    self.lines_read += 1
                    try:
                        line = raw_line.decode('utf-8')
                    except UnicodeDecodeError as e:
                        self.lines_skipped += 1
                        logger.debug("Skipping line %d: %s", self.lines_read, e)
                        continue
                    self._handle_line(line.strip())
                    if self.lines_read % PROGRESS_EVERY_LINES == 0:
                        self._log_progress()
                self._flush()
        except KeyboardInterrupt:
            interrupted = True
            # Points still waiting in the pending batch are never sent
            self.points_failed += len(self._batch)
            self._batch = []
            self._batch_size = 0
            logger.warning("Import interrupted after %d lines", self.lines_read)
        except DECODE_ERRORS as e:
            logger.error("Import aborted reading %s: %s", self.config.path, e)
            self._log_summary(self._summary(False))
            raise ImportSourceError(f"error reading {self.config.path}: {e}") from e
        summary = self._summary(interrupted)
        self._log_summary(summary)
        return summary

    # --- line handling ---

    def _handle_line(self, line: str) -> None:
        if not line:
            return
        if line.startswith('#'):
            self._handle_directive(line)
        elif self.section is Section.DDL:
            self._execute_command(line)
        else:
            self._add_point(line)

    def _handle_directive(self, line: str) -> None:
        upper = line.upper()
        if upper == DDL_MARKER:
            self._flush()
            self.section = Section.DDL
        elif upper == DML_MARKER:
            self._flush()
            self.section = Section.DML
        elif upper.startswith(CONTEXT_DATABASE):
            self._flush()
            self.database = line[len(CONTEXT_DATABASE):].strip()
            logger.debug("write target database -> %s", self.database)
        elif upper.startswith(CONTEXT_RETENTION_POLICY):
            self._flush()
            self.retention_policy = line[len(CONTEXT_RETENTION_POLICY):].strip()
            logger.debug("write target retention policy -> %s", self.retention_policy)

    def _add_point(self, line: str) -> None:
        try:
            parse_line(line)
        except LineParseError as e:
            self.lines_skipped += 1
            logger.debug("Skipping line %d: %s", self.lines_read, e)
            return
        size = len(line.encode('utf-8')) + 1
        if self._batch and self._batch_size + size > self.config.batch_bytes:
            self._flush()
        self._batch.append(line)
        self._batch_size += size
        if len(self._batch) >= self.batch_limit:
            self._flush()

    def _execute_command(self, query: str) -> None:
        def action() -> None:
            result = self.client.execute_query(self.database, query)
            errors = result.errors()
            if errors:
                raise PermanentServerError('; '.join(errors))

        if self._with_retry(action, f"command {query!r}"):
            self.commands_executed += 1
        else:
            self.commands_failed += 1

    # --- writes ---

    def _flush(self) -> None:
        if not self._batch:
            return
        batch = self._batch
        self._batch = []
        self._batch_size = 0
        database, rp = self.database, self.retention_policy

        def action() -> None:
            # Every attempt counts against the window, retries included
            self.limiter.acquire(len(batch))
            self.client.write_batch(database, rp, batch, self.config.consistency, self.config.precision)

        self.batches_sent += 1
        try:
            ok = self._with_retry(action, f"batch {self.batches_sent} ({len(batch)} points)")
        except KeyboardInterrupt:
            self.batches_failed += 1
            self.points_failed += len(batch)
            raise
        if ok:
            self.points_written += len(batch)
        else:
            self.batches_failed += 1
            self.points_failed += len(batch)

    def _with_retry(self, action: Callable[[], None], what: str) -> bool:
        limit = max(1, self.config.retry_limit)
        for attempt in range(1, limit + 1):
            try:
                action()
                return True
            except TransientServerError as e:
                if attempt >= limit:
                    logger.error("%s failed after %d attempts: %s", what, attempt, e)
                    return False
                delay = min(self.config.backoff_initial * (2 ** (attempt - 1)), self.config.backoff_max)
                logger.warning("%s failed (attempt %d/%d): %s; retrying in %.1fs", what, attempt, limit, e, delay)
                self.sleep(delay)
            except PermanentServerError as e:
                logger.error("%s failed: %s", what, e)
                return False
        return False

    # --- reporting ---

    def _elapsed(self) -> float:
        return max(0.0, self.clock() - self._started)

    def _log_progress(self) -> None:
        elapsed = self._elapsed()
        pps = int(self.points_written / elapsed) if elapsed > 0 else self.points_written
        logger.info("Processed %d lines. Time elapsed: %.1fs. Points per second (PPS): %d",
                    self.lines_read, elapsed, pps)

    def _summary(self, interrupted: bool) -> ImportSummary:
        return ImportSummary(
            lines_read=self.lines_read,
            points_written=self.points_written,
            points_failed=self.points_failed,
            lines_skipped=self.lines_skipped,
            batches_sent=self.batches_sent,
            batches_failed=self.batches_failed,
            commands_executed=self.commands_executed,
            commands_failed=self.commands_failed,
            elapsed=self._elapsed(),
            interrupted=interrupted,
        )

    def _log_summary(self, summary: ImportSummary) -> None:
        logger.info("Import finished: %d written, %d failed, %d skipped, %d lines in %.3fs",
                    summary.points_written, summary.points_failed, summary.lines_skipped,
                    summary.lines_read, summary.elapsed)
        if summary.lines_skipped:
            logger.warning("%d malformed lines were skipped", summary.lines_skipped)


def run_import(client, snapshot: SessionSnapshot, path: str, compressed: bool = False,
               pps: Optional[int] = None) -> ImportSummary:
    """Import ``path`` using the session's target, consistency and precision."""
    config = ImportConfig.from_session(snapshot, path, compressed=compressed, pps=pps)
    return Importer(client, config).run()
