"""sftp_exporter.sftp package exports."""

from sftp_exporter.sftp.client import (
    CapacitySample,
    RemoteFilesystemClient,
    WalkEntry,
    is_unsupported_operation,
)
from sftp_exporter.sftp.session import SessionState, SFTPSession

__all__ = [
    "CapacitySample",
    "RemoteFilesystemClient",
    "SessionState",
    "SFTPSession",
    "WalkEntry",
    "is_unsupported_operation",
]
