"""ScanWarden: incremental secret and static-analysis scans for git repositories."""

from .version import VERSION

__version__ = VERSION
