"""CLI entry for the influx shell.

Modes:
  (default)    Start the interactive shell
  -execute Q   Run one query, print the result and exit
  -import      Replay an export file (--path, optional --compressed / --pps)
  -version     Print the client version and exit
"""
from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from typing import Any, Dict, List, Optional

from influxcli import __version__
from influxcli.cli.repl import start_repl
from influxcli.core.client import InfluxClient
from influxcli.core.errors import ConfigurationError, InfluxCLIError, ServerError
from influxcli.core.formatter import render
from influxcli.core.importer import run_import
from influxcli.core.session import Consistency, OutputFormat, Precision, Session
from influxcli.utils.config import Config
from influxcli.utils.logging_setup import LOG_LEVELS, configure_logging
from influxcli.utils.validation import validate_import_path

logger = logging.getLogger(__name__)


# --- Parser construction ---

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='influx', description='Interactive shell and importer for InfluxDB')
    p.add_argument('-H', '--host', help='Server host (default: localhost)')
    p.add_argument('-p', '--port', type=int, help='Server port (default: 8086)')
    p.add_argument('-u', '--username', help='Username for basic auth')
    p.add_argument('--password', help='Password; pass an empty value to be prompted')
    p.add_argument('-d', '--database', help='Database to use')
    p.add_argument('--ssl', action='store_true', default=None, help='Connect over HTTPS')
    p.add_argument('--unsafeSsl', dest='unsafe_ssl', action='store_true', default=None,
                   help='Skip TLS certificate verification')
    p.add_argument('--format', choices=OutputFormat.values(), help='Output format')
    p.add_argument('--precision', choices=Precision.values(), help='Timestamp precision')
    p.add_argument('--consistency', choices=Consistency.values(), help='Write consistency level')
    p.add_argument('--pretty', action='store_true', default=None, help='Pretty print JSON output')
    p.add_argument('-e', '--execute', metavar='QUERY', help='Execute a query and exit')
    p.add_argument('-v', '--version', action='store_true', help='Print version and exit')
    p.add_argument('--import', dest='import_', action='store_true', help='Import a previous export')
    p.add_argument('--path', help='Export file to import')
    p.add_argument('--compressed', action='store_true', help='Import file is gzip compressed')
    p.add_argument('--pps', type=int, help='Points per second the import may write (0 = unlimited)')
    p.add_argument('--log-level', default='WARNING', choices=LOG_LEVELS)
    p.add_argument('--log-file', help='Also write logs to this file')
    return p


# --- Helpers ---

def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        'host': args.host,
        'port': args.port,
        'username': args.username,
        'password': args.password,
        'database': args.database,
        'ssl': args.ssl,
        'unsafe_ssl': args.unsafe_ssl,
        'format': args.format,
        'precision': args.precision,
        'consistency': args.consistency,
        'pretty': args.pretty,
        'pps': args.pps,
    }


def build_session(args: argparse.Namespace, config: Config) -> Session:
    overrides = _overrides(args)
    if args.password == '':
        overrides['password'] = getpass("password: ")
    return Session.from_config(config.settings, overrides)


def cmd_execute(session: Session, client: InfluxClient, query: str) -> int:
    snap = session.snapshot()
    try:
        result = client.execute_query(snap.database, query, epoch='ns')
    except ServerError as e:
        print(f"ERR: {e}", file=sys.stderr)
        return 1
    errors: List[str] = result.errors()
    for message in errors:
        print(f"ERR: {message}", file=sys.stderr)
    text = render(result, snap.output_format, snap.precision, snap.pretty)
    if text:
        print(text)
    return 1 if errors else 0


def cmd_import(session: Session, client: InfluxClient, args: argparse.Namespace) -> int:
    summary = run_import(client, session.snapshot(), args.path, compressed=args.compressed, pps=args.pps)
    for line in summary.report_lines():
        print(line)
    if summary.interrupted:
        return 130
    return 0 if summary.ok else 1


def _connect(session: Session) -> Optional[InfluxClient]:
    client = InfluxClient(session.connection())
    try:
        session.server_version = client.ping()
    except ServerError as e:
        print(f"Failed to connect to {client.url}: {e}", file=sys.stderr)
        print("Please check your connection settings and ensure 'influxd' is running.", file=sys.stderr)
        client.close()
        return None
    logger.info("Connected to %s version %s", client.url, session.server_version)
    return client


def run(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, args.log_file)

    if args.version:
        print(f"InfluxDB shell version: {__version__}")
        return 0

    if args.import_ and not args.execute:
        # A missing or unreadable export fails before the server is contacted
        if not args.path:
            raise ConfigurationError("--import requires --path")
        validate_import_path(args.path)

    config = Config()
    session = build_session(args, config)
    client = _connect(session)
    if client is None:
        return 1
    try:
        if args.execute:
            return cmd_execute(session, client, args.execute)
        if args.import_:
            return cmd_import(session, client, args)
        print(f"Connected to {client.url} version {session.server_version}")
        start_repl(session, client=client, history_file=config.history_path(), version=__version__)
        return 0
    finally:
        client.close()


# --- Main entry ---

def main() -> None:
    try:
        code = run()
        sys.exit(code)
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(2)
    except InfluxCLIError as e:
        logging.error(f"{e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.warning("Operation interrupted by user")
        sys.exit(130)
    except Exception as e:
        logging.error(f"Unhandled error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
