"""sftp_exporter.collectors package exports."""

from sftp_exporter.collectors.base import CollectorOutcome, run_collector
from sftp_exporter.collectors.tree import TreeResult, collect_tree

__all__ = [
    "CollectorOutcome",
    "TreeResult",
    "collect_tree",
    "run_collector",
]
