"""Run the influx shell with ``python -m influxcli.main``.

Same flags and exit codes as the installed ``influx`` script.
"""
import os
import sys

if __package__ in (None, ''):
    # Executed by path: make the checkout importable
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from influxcli.cli.main import main  # noqa: E402

if __name__ == "__main__":
    main()
