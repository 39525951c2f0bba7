"""
Contract tests for RemoteFilesystemClient walk / capacity / capability check
"""

import json
import threading

import pytest
from paramiko.sftp import SFTPError

from sftp_exporter.errors import (
    NotConnectedError,
    RemoteProtocolError,
    TraversalError,
    WalkCancelledError,
)
from sftp_exporter.logging import configure_logging
from sftp_exporter.sftp.client import RemoteFilesystemClient, is_unsupported_operation

from conftest import FakeSFTP, SessionHarness

NESTED_TREE = {
    "z.log": 5,
    "docs": {"readme.md": 7, "img": {"logo.png": 11}},
    "a.txt": 3,
    "empty": {},
    "current": "link",
}


def _client(config, sftp: FakeSFTP) -> RemoteFilesystemClient:
    harness = SessionHarness(config, sftp)
    harness.session.connect()
    return RemoteFilesystemClient(harness.session)


def test_walk_yields_every_file_with_size(config) -> None:
    """
    N files and M directories -> exactly N file entries with correct sizes
    """
    client = _client(config, FakeSFTP(NESTED_TREE))

    entries = list(client.walk("/data"))
    files = {e.path: e.size for e in entries if e.kind == "file"}
    dirs = [e.path for e in entries if e.is_dir]

    assert files == {
        "/data/a.txt": 3,
        "/data/docs/readme.md": 7,
        "/data/docs/img/logo.png": 11,
        "/data/z.log": 5,
    }
    assert dirs == ["/data", "/data/docs", "/data/docs/img", "/data/empty"]


def test_walk_is_depth_first_and_sorted(config) -> None:
    client = _client(config, FakeSFTP(NESTED_TREE))

    paths = [e.path for e in client.walk("/data")]

    assert paths == [
        "/data",
        "/data/a.txt",
        "/data/current",
        "/data/docs",
        "/data/docs/img",
        "/data/docs/img/logo.png",
        "/data/docs/readme.md",
        "/data/empty",
        "/data/z.log",
    ]


def test_walk_reports_symlink_without_following(config) -> None:
    client = _client(config, FakeSFTP(NESTED_TREE))

    kinds = {e.path: e.kind for e in client.walk("/data")}

    assert kinds["/data/current"] == "symlink"


def test_walk_is_restartable(config) -> None:
    """
    Two walks from the same root reproduce the same sequence
    """
    client = _client(config, FakeSFTP(NESTED_TREE))

    assert list(client.walk("/data")) == list(client.walk("/data"))


def test_walk_is_lazy(config) -> None:
    sftp = FakeSFTP(NESTED_TREE)
    client = _client(config, sftp)

    walker = client.walk("/data")
    assert sftp.listdir_calls == []

    next(walker)
    assert sftp.listdir_calls == []


def test_walk_failure_aborts_sequence(config) -> None:
    """
    A listing failure ends the walk; later siblings are never produced
    """
    client = _client(config, FakeSFTP(NESTED_TREE, fail_listdir=("/data/docs",)))

    seen = []
    with pytest.raises(TraversalError, match="/data/docs"):
        for entry in client.walk("/data"):
            seen.append(entry.path)

    assert seen == ["/data", "/data/a.txt", "/data/current", "/data/docs"]


def test_walk_missing_root_raises_traversal_error(config) -> None:
    client = _client(config, FakeSFTP(NESTED_TREE))

    with pytest.raises(TraversalError):
        list(client.walk("/elsewhere"))


def test_walk_stops_when_cancelled(config) -> None:
    client = _client(config, FakeSFTP(NESTED_TREE))
    cancel = threading.Event()

    walker = client.walk("/data", cancel=cancel)
    next(walker)
    cancel.set()

    with pytest.raises(WalkCancelledError):
        next(walker)


def test_walk_requires_connection(harness) -> None:
    client = RemoteFilesystemClient(harness.session)

    with pytest.raises(NotConnectedError):
        client.walk("/data")


def test_stat_capacity_parses_statvfs_reply(config) -> None:
    client = _client(config, FakeSFTP({}))

    sample = client.stat_capacity("/data")

    assert sample.path == "/data"
    assert sample.total_bytes == 4096 * 1000
    assert sample.free_bytes == 4096 * 250
    assert sample.available_bytes == 4096 * 200
    assert sample.total_inodes == 5000
    assert sample.free_inodes == 4000


def test_stat_capacity_wraps_server_error(config) -> None:
    client = _client(config, FakeSFTP({}, statvfs_error=IOError("Operation unsupported")))

    with pytest.raises(RemoteProtocolError, match="Operation unsupported") as excinfo:
        client.stat_capacity("/data")

    assert excinfo.value.path == "/data"
    assert isinstance(excinfo.value.__cause__, IOError)


def test_stat_capacity_requires_connection(harness) -> None:
    with pytest.raises(NotConnectedError):
        RemoteFilesystemClient(harness.session).stat_capacity("/")


@pytest.mark.parametrize(
    "error",
    [
        IOError("Operation unsupported"),
        SFTPError("SSH_FX_OP_UNSUPPORTED: statvfs"),
    ],
)
def test_capability_false_on_unsupported_operation(config, error) -> None:
    client = _client(config, FakeSFTP({}, statvfs_error=error))

    assert client.supports_capacity_query() is False


@pytest.mark.parametrize(
    "error",
    [
        IOError(13, "Permission denied"),
        EOFError(),
        SFTPError("Garbage packet received"),
    ],
)
def test_capability_true_on_other_errors(config, error) -> None:
    client = _client(config, FakeSFTP({}, statvfs_error=error))

    assert client.supports_capacity_query() is True


def test_capability_true_on_success(config) -> None:
    assert _client(config, FakeSFTP({})).supports_capacity_query() is True


def test_capability_true_when_not_connected(harness) -> None:
    """
    Missing session is indeterminate, not evidence of an unsupported server
    """
    assert RemoteFilesystemClient(harness.session).supports_capacity_query() is True


def test_capability_is_not_cached(config) -> None:
    sftp = FakeSFTP({}, statvfs_error=IOError("Operation unsupported"))
    client = _client(config, sftp)

    assert client.supports_capacity_query() is False
    sftp.statvfs_error = None
    assert client.supports_capacity_query() is True


def test_capability_emits_debug_event(config, capsys) -> None:
    configure_logging("debug")
    client = _client(config, FakeSFTP({}, statvfs_error=IOError("Operation unsupported")))
    capsys.readouterr()

    client.supports_capacity_query()

    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["event_type"] == "capacity_check"
    assert payload["supported"] is False
    assert payload["level"] == "debug"


def test_unsupported_classifier_is_case_insensitive() -> None:
    assert is_unsupported_operation(RemoteProtocolError("/", "OPERATION UNSUPPORTED"))
    assert not is_unsupported_operation(RemoteProtocolError("/", "No such file"))


def test_unsupported_status_without_message_counts_as_supported(config) -> None:
    """
    Status code is not visible through paramiko; empty text stays indeterminate
    """
    client = _client(config, FakeSFTP({}, statvfs_error=IOError("")))

    assert client.supports_capacity_query() is True
