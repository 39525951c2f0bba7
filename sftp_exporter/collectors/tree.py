"""
sftp_exporter.collectors.tree
AUTHOR: carter-vin

Tree collector
- Walks one remote path and folds entries into counts
- Any walk failure propagates; no partial totals are returned
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from sftp_exporter.sftp.client import RemoteFilesystemClient


@dataclass(frozen=True)
class TreeResult:
    path: str
    objects: int
    total_size_bytes: int
    directories: int


def collect_tree(
    client: RemoteFilesystemClient,
    path: str,
    cancel: Optional[threading.Event] = None,
) -> TreeResult:
    """
    Count non-directory entries and their bytes under path
    """
    objects = 0
    total_size = 0
    directories = 0

    for entry in client.walk(path, cancel=cancel):
        if entry.is_dir:
            directories += 1
            continue
        objects += 1
        total_size += entry.size

    return TreeResult(
        path=path,
        objects=objects,
        total_size_bytes=total_size,
        directories=directories,
    )
