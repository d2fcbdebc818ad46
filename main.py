"""Thin shim for IDEs and direct execution."""

from dashboard_aggregator.cli import main

if __name__ == "__main__":
    import sys

    sys.exit(main())
