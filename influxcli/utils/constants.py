"""Constants used throughout the influxcli package."""

DEFAULT_HOST = 'localhost'
DEFAULT_PORT = 8086

# Session defaults
DEFAULT_FORMAT = 'column'
DEFAULT_PRECISION = 'ns'
DEFAULT_CONSISTENCY = 'all'
# Import throttle; 0 disables throttling
DEFAULT_PPS = 0

# Import batching
MAX_BATCH_POINTS = 5000
MAX_BATCH_BYTES = 4 * 1024 * 1024
PROGRESS_EVERY_LINES = 100000

# Write retries (attempts include the first one)
WRITE_RETRY_LIMIT = 5
RETRY_BACKOFF_INITIAL = 0.5
RETRY_BACKOFF_MAX = 8.0

# HTTP
REQUEST_TIMEOUT = 30.0
USER_AGENT = 'influxcli'

# Export file markers
DDL_MARKER = '# DDL'
DML_MARKER = '# DML'
CONTEXT_DATABASE = '# CONTEXT-DATABASE:'
CONTEXT_RETENTION_POLICY = '# CONTEXT-RETENTION-POLICY:'

HISTORY_FILE = '~/.influx_history'
