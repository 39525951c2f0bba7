"""
sftp_exporter.collectors.sftp
AUTHOR: carter-vin

Scrape-time collector for the configured SFTP paths

Pass (all-or-nothing):
1. connect (lazy, reconnects a closed or dead session)
2. check capacity support once
3. per path: walk totals, plus capacity when supported
4. build one MetricSet

Failure semantics:
- any failure aborts the pass -> ScrapeError, partial totals dropped
- a failure of the SFTP channel itself closes the session; the next pass reconnects
- no retry, no caching between passes
- passes are serialized: one SFTP channel carries every request
"""

from __future__ import annotations

import socket
import threading
import time
from typing import Optional

import paramiko
from paramiko.sftp import SFTPError

from sftp_exporter import EXPORTER_VERSION
from sftp_exporter.collectors.tree import TreeResult, collect_tree
from sftp_exporter.config import ExporterConfig
from sftp_exporter.errors import ExporterError, ScrapeError
from sftp_exporter.logging import emit_event
from sftp_exporter.model import MetricSet, build_metric_set, to_families
from sftp_exporter.sftp.client import CapacitySample, RemoteFilesystemClient
from sftp_exporter.sftp.session import SFTPSession

# Raised by paramiko when the SFTP layer itself cannot be trusted any more
_CHANNEL_FAILURES = (EOFError, socket.timeout, paramiko.SSHException, SFTPError)


def _is_channel_failure(error: BaseException) -> bool:
    """
    True when error, or what it wraps, means the SFTP channel is unusable
    """
    return isinstance(error, _CHANNEL_FAILURES) or isinstance(error.__cause__, _CHANNEL_FAILURES)


class SFTPCollector:
    def __init__(
        self,
        config: ExporterConfig,
        session: SFTPSession,
        client: Optional[RemoteFilesystemClient] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._client = client or RemoteFilesystemClient(session)
        self._lock = threading.Lock()

    @property
    def session(self) -> SFTPSession:
        return self._session

    def collect(self, cancel: Optional[threading.Event] = None) -> MetricSet:
        """
        Run one full pass; raise ScrapeError on any failure
        """
        with self._lock:
            start = time.monotonic()
            host = self._config.sftp_host

            try:
                self._session.connect()
                supports_capacity = self._client.supports_capacity_query()

                trees: list[TreeResult] = []
                capacities: list[CapacitySample] = []

                for path in self._config.sftp_paths:
                    trees.append(collect_tree(self._client, path, cancel))
                    if supports_capacity:
                        capacities.append(self._client.stat_capacity(path))

            except (ExporterError, paramiko.SSHException, OSError, EOFError) as e:
                # connect() re-raises SFTP open failures unchanged; wrap them here
                raise self._scrape_error(e, start) from e

            duration_s = time.monotonic() - start
            metric_set = build_metric_set(host, trees, capacities, duration_s=duration_s)

            emit_event(
                "scrape_completed",
                exporter_version=EXPORTER_VERSION,
                host=host,
                paths=len(trees),
                capacity_supported=supports_capacity,
                samples=len(metric_set.samples),
                elapsed_ms=int(duration_s * 1000),
            )
            return metric_set

    def _scrape_error(self, error: BaseException, start: float) -> ScrapeError:
        """
        Log the failed pass, drop a broken channel, build the ScrapeError
        """
        host = self._config.sftp_host
        reconnect = _is_channel_failure(error)

        emit_event(
            "scrape_failed",
            exporter_version=EXPORTER_VERSION,
            host=host,
            elapsed_ms=int((time.monotonic() - start) * 1000),
            error_type=type(error).__name__,
            message=str(error),
            reconnect=reconnect,
        )

        if reconnect:
            # Next pass opens a fresh connection
            try:
                self._session.close()
            except Exception:
                # close failures were already emitted as sftp_close_failed
                pass

        return ScrapeError(f"scrape of {host} failed: {error}")


class PrometheusCollector:
    """
    prometheus_client registry adapter; a failed pass raises out of collect()
    """

    def __init__(self, collector: SFTPCollector) -> None:
        self._collector = collector

    def describe(self):
        # Keep registration from triggering a remote pass
        return []

    def collect(self):
        return to_families(self._collector.collect())
