"""
Shared fakes for paramiko SSH/SFTP clients

FakeSFTP serves an in-memory tree:
- dict -> directory, int -> regular file of that size, "link" -> symlink
"""

from __future__ import annotations

import errno
import posixpath
import stat
from typing import Any, Optional

import paramiko
import pytest
from paramiko.sftp import CMD_EXTENDED_REPLY

from sftp_exporter.config import ExporterConfig
from sftp_exporter.logging import configure_logging
from sftp_exporter.sftp.session import SFTPSession

# bsize, frsize, blocks, bfree, bavail, files, ffree, favail, fsid, flag, namemax
DEFAULT_STATVFS = (4096, 4096, 1000, 250, 200, 5000, 4000, 4000, 1, 0, 255)


class FakeTransport:
    def __init__(self) -> None:
        self.active = True

    def is_active(self) -> bool:
        return self.active


class FakeSSH:
    def __init__(self, close_error: Optional[Exception] = None) -> None:
        self.closed = False
        self.close_calls = 0
        self.close_error = close_error
        self.transport = FakeTransport()

    def get_transport(self) -> FakeTransport:
        return self.transport

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self.transport.active = False
        if self.close_error is not None:
            raise self.close_error


class FakeChannel:
    def __init__(self) -> None:
        self.closed = False


class FakeSFTP:
    def __init__(
        self,
        tree: Optional[dict[str, Any]] = None,
        *,
        root: str = "/data",
        fail_listdir: tuple[str, ...] = (),
        statvfs: tuple[int, ...] = DEFAULT_STATVFS,
        statvfs_error: Optional[Exception] = None,
        close_error: Optional[Exception] = None,
    ) -> None:
        self.root = root
        self.tree = tree if tree is not None else {}
        self.fail_listdir = set(fail_listdir)
        self.statvfs = statvfs
        self.statvfs_error = statvfs_error
        self.close_error = close_error
        self.closed = False
        self.listdir_calls: list[str] = []
        self.channel = FakeChannel()
        # every request fails like a broken subsystem channel
        self.dead = False

    def _check_alive(self) -> None:
        if self.dead:
            raise EOFError()

    def get_channel(self) -> FakeChannel:
        return self.channel

    def _node(self, path: str) -> Any:
        if path == self.root:
            return self.tree
        prefix = self.root.rstrip("/") + "/"
        if not path.startswith(prefix):
            raise IOError(errno.ENOENT, "No such file")
        node: Any = self.tree
        for part in path[len(prefix):].split("/"):
            if not isinstance(node, dict) or part not in node:
                raise IOError(errno.ENOENT, "No such file")
            node = node[part]
        return node

    @staticmethod
    def _attrs(name: str, node: Any) -> paramiko.SFTPAttributes:
        attrs = paramiko.SFTPAttributes()
        attrs.filename = name
        if isinstance(node, dict):
            attrs.st_mode = stat.S_IFDIR | 0o755
            attrs.st_size = 4096
        elif node == "link":
            attrs.st_mode = stat.S_IFLNK | 0o777
            attrs.st_size = 11
        else:
            attrs.st_mode = stat.S_IFREG | 0o644
            attrs.st_size = node
        return attrs

    def stat(self, path: str) -> paramiko.SFTPAttributes:
        self._check_alive()
        return self._attrs(posixpath.basename(path), self._node(path))

    def listdir_attr(self, path: str) -> list[paramiko.SFTPAttributes]:
        self._check_alive()
        self.listdir_calls.append(path)
        if path in self.fail_listdir:
            raise IOError(errno.EACCES, "Permission denied")
        node = self._node(path)
        # reversed on purpose: the walker must sort
        return [self._attrs(name, child) for name, child in reversed(list(node.items()))]

    def _request(self, t: int, *args: Any):
        self._check_alive()
        if self.statvfs_error is not None:
            raise self.statvfs_error
        msg = paramiko.Message()
        for value in self.statvfs:
            msg.add_int64(value)
        msg.rewind()
        return CMD_EXTENDED_REPLY, msg

    def close(self) -> None:
        self.closed = True
        self.channel.closed = True
        if self.close_error is not None:
            raise self.close_error


class SessionHarness:
    """
    Builds an SFTPSession whose factories hand out fakes and count handshakes
    """

    def __init__(self, config: ExporterConfig, sftp: FakeSFTP) -> None:
        self.sftp = sftp
        self.ssh_clients: list[FakeSSH] = []
        self.sftp_error: Optional[Exception] = None
        self.ssh_error: Optional[Exception] = None
        self.session = SFTPSession(
            config,
            ssh_factory=self._open_ssh,
            sftp_factory=self._open_sftp,
        )

    @property
    def handshakes(self) -> int:
        return len(self.ssh_clients)

    def _open_ssh(self, config: ExporterConfig) -> FakeSSH:
        if self.ssh_error is not None:
            raise self.ssh_error
        ssh = FakeSSH()
        self.ssh_clients.append(ssh)
        return ssh

    def _open_sftp(self, ssh: FakeSSH) -> FakeSFTP:
        if self.sftp_error is not None:
            raise self.sftp_error
        # a reopened subsystem gets a fresh channel
        self.sftp.closed = False
        self.sftp.dead = False
        self.sftp.channel = FakeChannel()
        return self.sftp


@pytest.fixture(autouse=True)
def _reset_log_level():
    configure_logging("info")
    yield
    configure_logging("info")


@pytest.fixture
def config() -> ExporterConfig:
    return ExporterConfig(
        sftp_host="sftp.example.test",
        sftp_user="exporter",
        sftp_pass="secret",
        sftp_paths=("/data",),
    )


@pytest.fixture
def three_files() -> FakeSFTP:
    return FakeSFTP({"a.bin": 10, "b.bin": 20, "c.bin": 30})


@pytest.fixture
def harness(config: ExporterConfig, three_files: FakeSFTP) -> SessionHarness:
    return SessionHarness(config, three_files)
