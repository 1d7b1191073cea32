"""GitHub integration modules."""

from .pr_commenter import PRCommenter
from .reporter import Reporter
from .sarif_generator import SARIFGenerator
from .status_checker import StatusChecker

__all__ = [
    "PRCommenter",
    "Reporter",
    "SARIFGenerator",
    "StatusChecker",
]
