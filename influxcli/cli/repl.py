r"""Interactive shell for InfluxDB.
Commands (case-insensitive):
  use <db>[.<rp>]          Set current database (and optionally retention policy)
  precision <p>            Show / set timestamp format (rfc3339|h|m|s|ms|u|ns)
  format <f>               Show / set output format (column|csv|json)
  consistency <c>          Show / set write consistency (any|one|quorum|all)
  pretty                   Toggle pretty printed JSON
  connect <host[:port]>    Connect to another server
  auth [username]          Prompt for username and password
  insert <point>           Write one point in line protocol
  insert into <rp> <point> Write one point to a retention policy (db.rp accepted)
  import <path> [--compressed] [--pps N]
                           Import a previous database export
  settings                 Show current session settings
  history                  Show commands entered this session
  help                     Show this help
  exit / quit              Leave the shell
Anything else is sent to the server as a query, e.g.:
  SHOW DATABASES
  SELECT * FROM cpu WHERE time > now() - 1h
"""
from __future__ import annotations
from dataclasses import replace
from getpass import getpass
from typing import Callable, Dict, Iterable, List, Optional, TextIO, Tuple
import logging
import os
import re
import shlex
import sys

from influxcli.core.client import InfluxClient
from influxcli.core.errors import ConfigurationError, InfluxCLIError
from influxcli.core.formatter import render
from influxcli.core.importer import ImportConfig, Importer
from influxcli.core.line_protocol import parse_line
from influxcli.core.session import Consistency, OutputFormat, Precision, Session, split_db_rp
from influxcli.utils.validation import parse_connect_target

try:
    import readline  # type: ignore
except ImportError:  # pragma: no cover
    readline = None

logger = logging.getLogger(__name__)
PROMPT = "> "

COMMANDS = [
    'use', 'precision', 'format', 'consistency', 'pretty', 'connect', 'auth',
    'insert', 'import', 'settings', 'history', 'help', 'exit', 'quit'
]
ARG_CHOICES: Dict[str, List[str]] = {
    'format': OutputFormat.values(),
    'precision': Precision.values(),
    'consistency': Consistency.values(),
}
INFLUXQL_KEYWORDS = [
    'SELECT', 'FROM', 'WHERE', 'GROUP BY', 'ORDER BY', 'LIMIT', 'OFFSET', 'SLIMIT', 'SOFFSET',
    'FILL', 'INTO', 'AND', 'OR', 'AS', 'ASC', 'DESC', 'TIME', 'NOW()', 'TZ',
    'SHOW', 'DATABASES', 'MEASUREMENTS', 'SERIES', 'TAG KEYS', 'TAG VALUES', 'FIELD KEYS',
    'RETENTION POLICIES', 'USERS', 'QUERIES', 'CONTINUOUS QUERIES', 'STATS', 'DIAGNOSTICS',
    'CREATE', 'DATABASE', 'RETENTION POLICY', 'DURATION', 'REPLICATION', 'SHARD DURATION', 'DEFAULT',
    'DROP', 'DELETE', 'ALTER', 'GRANT', 'REVOKE', 'KILL QUERY', 'ON', 'WITH KEY'
]

# Helper functions for robust command parsing with smart/unmatched quotes
SMART_QUOTE_MAP = {
    '\u201c': '"',  # left double
    '\u201d': '"',  # right double
    '\u201e': '"',
    '\u201f': '"',
    '\u2033': '"',
    '\u2018': "'",  # left single
    '\u2019': "'",  # right single / apostrophe
    '\u201b': "'",
    '\u2032': "'",
}

def _normalize_smart_quotes(s: str) -> str:
    return ''.join(SMART_QUOTE_MAP.get(ch, ch) for ch in s)

def _safe_split(cmd: str) -> List[str]:
    norm = _normalize_smart_quotes(cmd.strip())
    try:
        return shlex.split(norm)
    except ValueError:
        # Try auto-closing unmatched quotes
        fixed = norm
        if norm.count('"') % 2 == 1:
            fixed += '"'
        if norm.count("'") % 2 == 1:
            fixed += "'"
        if fixed != norm:
            try:
                return shlex.split(fixed)
            except ValueError:
                pass
        # Fallback simple whitespace split (best effort)
        return fixed.split()

def _match_case(candidate: str, typed: str) -> str:
    return candidate.lower() if typed and typed[-1].islower() else candidate

def _completer(text: str, state: int) -> Optional[str]:
    """Tab completion for meta-commands, their enumerated arguments and InfluxQL keywords."""
    line_buffer = ''
    if readline:
        try:
            line_buffer = readline.get_line_buffer()
        except Exception:  # pragma: no cover
            line_buffer = text or ''
    if not line_buffer:
        line_buffer = text or ''
    tokens = line_buffer.split()
    completing_first = len(tokens) == 0 or (len(tokens) == 1 and not line_buffer.endswith(' '))
    frag = (text or '').lower()
    if completing_first:
        matches = [c for c in COMMANDS if c.startswith(frag)]
        matches += [_match_case(k, text) for k in INFLUXQL_KEYWORDS if k.lower().startswith(frag)]
    elif tokens[0].lower() in ARG_CHOICES:
        if len(tokens) > 2 or (len(tokens) == 2 and line_buffer.endswith(' ')):
            return None
        matches = [v for v in ARG_CHOICES[tokens[0].lower()] if v.startswith(frag)]
    else:
        matches = [_match_case(k, text) for k in INFLUXQL_KEYWORDS if frag and k.lower().startswith(frag)]
    return matches[state] if state < len(matches) else None


def _parse_import_args(arg: str) -> Tuple[str, bool, Optional[int]]:
    path = None
    compressed = False
    pps = None
    tokens = _safe_split(arg)
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        if tok in ('--compressed', '-compressed'):
            compressed = True
        elif tok in ('--pps', '-pps') or tok.startswith('--pps='):
            if '=' in tok:
                raw = tok.split('=', 1)[1]
            else:
                i += 1
                if i >= len(tokens):
                    raise ConfigurationError("--pps requires a value")
                raw = tokens[i]
            try:
                pps = int(raw)
            except ValueError:
                raise ConfigurationError(f"invalid --pps value: {raw}")
            if pps < 0:
                raise ConfigurationError(f"--pps must be >= 0: {pps}")
        elif path is None:
            path = tok
        else:
            raise ConfigurationError(f"unexpected import argument: {tok}")
        i += 1
    if not path:
        raise ConfigurationError("Usage: import <path> [--compressed] [--pps N]")
    return path, compressed, pps


class CommandLoop:
    """Reads lines, runs meta-commands against the session and sends everything else as queries."""

    def __init__(self,
                 session: Session,
                 client_factory: Callable = InfluxClient,
                 out: Optional[TextIO] = None,
                 err: Optional[TextIO] = None,
                 client=None):
        self.session = session
        self.client_factory = client_factory
        self.client = client if client is not None else client_factory(session.connection())
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.history: List[str] = []
        self.handlers: Dict[str, Callable[[str], None]] = {
            'use': self.cmd_use,
            'precision': self.cmd_precision,
            'format': self.cmd_format,
            'consistency': self.cmd_consistency,
            'pretty': self.cmd_pretty,
            'connect': self.cmd_connect,
            'auth': self.cmd_auth,
            'insert': self.cmd_insert,
            'import': self.cmd_import,
            'settings': self.cmd_settings,
            'history': self.cmd_history,
            'help': self.cmd_help,
        }

    def _print(self, text: str = '') -> None:
        print(text, file=self.out)

    def _error(self, message) -> None:
        print(f"ERR: {message}", file=self.err)

    # --- dispatch ---

    def dispatch(self, line: str) -> bool:
        """Run one input line. Returns False when the shell should exit."""
        line = _normalize_smart_quotes(line).strip()
        if not line:
            return True
        self.history.append(line)
        parts = re.split(r'\s+', line, maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1].strip() if len(parts) > 1 else ''
        if cmd in ('exit', 'quit'):
            return False
        try:
            handler = self.handlers.get(cmd)
            if handler:
                handler(arg)
            else:
                self.execute_query(line)
        except InfluxCLIError as e:
            self._error(e)
        return True

    def run(self, lines: Optional[Iterable[str]] = None) -> None:
        """Read-dispatch loop over ``lines`` (or the terminal) until EOF or exit."""
        source = iter(lines) if lines is not None else None
        while True:
            try:
                line = next(source) if source is not None else input(PROMPT)
            except (EOFError, StopIteration):
                if source is None:
                    self._print()  # newline on Ctrl-D
                break
            except KeyboardInterrupt:
                self._print()
                break
            try:
                if not self.dispatch(line):
                    break
            except KeyboardInterrupt:
                self._error("interrupted")
            except Exception as e:
                logger.debug("command failed", exc_info=True)
                self._error(e)

    # --- queries ---

    def execute_query(self, query: str) -> None:
        snap = self.session.snapshot()
        result = self.client.execute_query(snap.database, query, epoch='ns')
        for message in result.errors():
            self._error(message)
        text = render(result, snap.output_format, snap.precision, snap.pretty)
        if text:
            self._print(text)

    # --- meta-commands ---

    def _show_or_set(self, name: str, arg: str) -> None:
        if not arg:
            attr = Session.ENUM_FIELDS[name][0]
            self._print(f"{name}: {getattr(self.session, attr)}")
            return
        self.session.set_field(name, arg.split()[0])

    def cmd_use(self, arg: str) -> None:
        self.session.use(arg)
        self._print(f"Using database {self.session.database}")
        if self.session.retention_policy:
            self._print(f"Using retention policy {self.session.retention_policy}")

    def cmd_precision(self, arg: str) -> None:
        self._show_or_set('precision', arg)

    def cmd_format(self, arg: str) -> None:
        self._show_or_set('format', arg)

    def cmd_consistency(self, arg: str) -> None:
        self._show_or_set('consistency', arg)

    def cmd_pretty(self, _arg: str) -> None:
        self.session.set_field('pretty', not self.session.pretty)
        self._print("Pretty print enabled" if self.session.pretty else "Pretty print disabled")

    def cmd_connect(self, arg: str) -> None:
        host, port = parse_connect_target(arg, self.session.port)
        client = self.client_factory(replace(self.session.connection(), host=host, port=port))
        version = client.ping()
        self.session.set_field('host', host)
        self.session.set_field('port', port)
        self.session.server_version = version
        self.client = client
        self._print(f"Connected to {client.url} version {version}")

    def cmd_auth(self, arg: str) -> None:
        username = arg.split()[0] if arg else input("username: ").strip()
        password = getpass("password: ")
        self.session.set_field('username', username)
        self.session.set_field('password', password)
        self.client = self.client_factory(self.session.connection())

    def cmd_insert(self, arg: str) -> None:
        database, rp = self.session.database, self.session.retention_policy
        body = arg
        if body.lower().startswith('into '):
            target, _, body = body[5:].strip().partition(' ')
            db_part, rp_part = split_db_rp(target)
            if rp_part:
                database, rp = db_part, rp_part
            else:
                rp = db_part
        body = body.strip()
        if not body:
            raise ConfigurationError("Usage: insert [into <rp>] <line protocol>")
        parse_line(body)
        snap = self.session.snapshot()
        self.client.write_batch(database, rp, [body], snap.consistency, snap.precision)

    def cmd_import(self, arg: str) -> None:
        path, compressed, pps = _parse_import_args(arg)
        config = ImportConfig.from_session(self.session.snapshot(), path, compressed=compressed, pps=pps)
        summary = Importer(self.client, config).run()
        for line in summary.report_lines():
            self._print(line)

    def cmd_settings(self, _arg: str) -> None:
        rows = self.session.settings_rows()
        width = max(len(name) for name, _ in rows)
        self._print(f"{'Setting'.ljust(width)}  Value")
        self._print(f"{'-' * 7:<{width}}  -----")
        for name, value in rows:
            self._print(f"{name.ljust(width)}  {value}")

    def cmd_history(self, _arg: str) -> None:
        for idx, entry in enumerate(self.history, start=1):
            self._print(f"{idx}: {entry}")

    def cmd_help(self, _arg: str) -> None:
        self._print((__doc__ or 'No help available.').rstrip())


def _setup_readline(history_file: Optional[str]) -> None:
    if not readline:
        return
    try:
        readline.set_completer(_completer)
        readline.set_completer_delims(' \t\n')
        # libedit (macOS default) needs a different binding than GNU readline
        docstr = getattr(readline, '__doc__', '') or ''
        if 'libedit' in docstr.lower():
            readline.parse_and_bind('bind ^I rl_complete')
        else:
            readline.parse_and_bind('tab: complete')
        readline.parse_and_bind('set completion-ignore-case on')
        if history_file and os.path.exists(history_file):
            readline.read_history_file(history_file)
    except OSError as e:  # pragma: no cover
        logger.debug("readline setup failed: %s", e)


def _save_history(history_file: Optional[str]) -> None:
    if not (readline and history_file):
        return
    try:
        readline.write_history_file(history_file)
    except OSError as e:  # pragma: no cover
        logger.debug("could not save history to %s: %s", history_file, e)


def start_repl(session: Session, client=None, history_file: Optional[str] = None,
               version: str = 'unknown') -> None:
    """Start the interactive shell on the terminal."""
    loop = CommandLoop(session, client=client)
    _setup_readline(history_file)
    print(f"InfluxDB shell version: {version}")
    try:
        loop.run()
    finally:
        _save_history(history_file)
