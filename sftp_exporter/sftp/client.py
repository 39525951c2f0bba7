"""
sftp_exporter.sftp.client
AUTHOR: carter-vin

Remote filesystem operations over an SFTPSession

- walk: lazy depth-first traversal, children in name order
- stat_capacity: statvfs@openssh.com extension
- supports_capacity_query: live check of "/", never cached
"""

from __future__ import annotations

import posixpath
import stat
import threading
from dataclasses import dataclass
from typing import Iterator, Optional

import paramiko
from paramiko.sftp import (
    CMD_EXTENDED,
    CMD_EXTENDED_REPLY,
    SFTP_DESC,
    SFTP_OP_UNSUPPORTED,
    SFTPError,
)

from sftp_exporter import EXPORTER_VERSION
from sftp_exporter.errors import (
    ExporterError,
    RemoteProtocolError,
    TraversalError,
    WalkCancelledError,
)
from sftp_exporter.logging import emit_event
from sftp_exporter.sftp.session import SFTPSession

STATVFS_EXTENSION = "statvfs@openssh.com"

# Errors paramiko raises for a failed request or a dropped channel
_REMOTE_ERRORS = (OSError, EOFError, SFTPError, paramiko.SSHException)

_UNSUPPORTED_MARKERS = (
    "ssh_fx_op_unsupported",
    SFTP_DESC[SFTP_OP_UNSUPPORTED].lower(),
)


@dataclass(frozen=True)
class WalkEntry:
    path: str
    kind: str  # "file" | "directory" | "symlink" | "other"
    size: int

    @property
    def is_dir(self) -> bool:
        return self.kind == "directory"


@dataclass(frozen=True)
class CapacitySample:
    """
    Space and inode figures for the filesystem holding a path
    """

    path: str
    total_bytes: int
    free_bytes: int
    available_bytes: int
    total_inodes: int
    free_inodes: int


def is_unsupported_operation(error: BaseException) -> bool:
    """
    True when the server rejected the request as an unsupported operation

    Only place that knows how that status surfaces in error text. paramiko
    drops the SFTP status code (SSH_FX_OP_UNSUPPORTED = 8) and raises
    IOError with the server's message, so only the text can be matched. A
    server that sends that status with an empty message is indistinguishable
    from any other bare IOError and is reported as supported; the capacity
    query then fails the pass instead of being skipped.
    """
    text = str(error).lower()
    return any(marker in text for marker in _UNSUPPORTED_MARKERS)


def _entry_kind(mode: Optional[int]) -> str:
    if mode is None:
        return "other"
    if stat.S_ISDIR(mode):
        return "directory"
    if stat.S_ISREG(mode):
        return "file"
    if stat.S_ISLNK(mode):
        return "symlink"
    return "other"


def _entry_from_attrs(path: str, attrs: paramiko.SFTPAttributes) -> WalkEntry:
    return WalkEntry(path=path, kind=_entry_kind(attrs.st_mode), size=attrs.st_size or 0)


def _check_cancel(cancel: Optional[threading.Event], path: str) -> None:
    if cancel is not None and cancel.is_set():
        raise WalkCancelledError(path)


class RemoteFilesystemClient:
    def __init__(self, session: SFTPSession) -> None:
        self._session = session

    def stat_capacity(self, path: str) -> CapacitySample:
        """
        Query space/inode statistics for the filesystem containing path

        Raises:
        - NotConnectedError without a live session
        - RemoteProtocolError for any server or channel failure
        """
        sftp = self._session.sftp()

        try:
            t, msg = sftp._request(CMD_EXTENDED, STATVFS_EXTENSION, path)
            if t != CMD_EXTENDED_REPLY:
                raise SFTPError(f"unexpected response type {t} to {STATVFS_EXTENSION}")

            # struct statvfs, 11 x uint64 in wire order
            (
                _bsize,
                frsize,
                blocks,
                bfree,
                bavail,
                files,
                ffree,
                _favail,
                _fsid,
                _flag,
                _namemax,
            ) = (msg.get_int64() for _ in range(11))
        except _REMOTE_ERRORS as e:
            raise RemoteProtocolError(path, str(e) or type(e).__name__) from e

        return CapacitySample(
            path=path,
            total_bytes=frsize * blocks,
            free_bytes=frsize * bfree,
            available_bytes=frsize * bavail,
            total_inodes=files,
            free_inodes=ffree,
        )

    def supports_capacity_query(self) -> bool:
        """
        Query "/" once

        False only for the unsupported-operation status; any other failure
        is indeterminate and counts as supported.
        """
        try:
            self.stat_capacity("/")
        except RemoteProtocolError as e:
            supported = not is_unsupported_operation(e)
            self._emit_check(supported, e)
            return supported
        except ExporterError as e:
            self._emit_check(True, e)
            return True

        self._emit_check(True, None)
        return True

    def walk(self, root: str, cancel: Optional[threading.Event] = None) -> Iterator[WalkEntry]:
        """
        Lazy depth-first walk rooted at root (root yielded first)

        Every call starts a fresh traversal. Any failure raises TraversalError
        and ends the sequence; a set cancel event raises WalkCancelledError at
        the next advancement. Symlinks are reported, not followed.
        """
        sftp = self._session.sftp()
        return self._walk(sftp, root, cancel)

    def _walk(
        self,
        sftp: paramiko.SFTPClient,
        root: str,
        cancel: Optional[threading.Event],
    ) -> Iterator[WalkEntry]:
        _check_cancel(cancel, root)

        try:
            attrs = sftp.stat(root)
        except _REMOTE_ERRORS as e:
            raise TraversalError(root, str(e) or type(e).__name__) from e

        entry = _entry_from_attrs(root, attrs)
        yield entry

        if entry.is_dir:
            yield from self._walk_dir(sftp, root, cancel)

    def _walk_dir(
        self,
        sftp: paramiko.SFTPClient,
        path: str,
        cancel: Optional[threading.Event],
    ) -> Iterator[WalkEntry]:
        _check_cancel(cancel, path)

        try:
            children = sorted(sftp.listdir_attr(path), key=lambda a: a.filename)
        except _REMOTE_ERRORS as e:
            raise TraversalError(path, str(e) or type(e).__name__) from e

        for attrs in children:
            child_path = posixpath.join(path, attrs.filename)
            _check_cancel(cancel, child_path)

            entry = _entry_from_attrs(child_path, attrs)
            yield entry

            if entry.is_dir:
                yield from self._walk_dir(sftp, child_path, cancel)

    def _emit_check(self, supported: bool, error: Optional[Exception]) -> None:
        fields = {"host": self._session.host, "supported": supported}
        if error is not None:
            fields["error_type"] = type(error).__name__
            fields["message"] = str(error)
        emit_event("capacity_check", exporter_version=EXPORTER_VERSION, **fields)
