"""
sftp_exporter.sftp.session
AUTHOR: carter-vin

SSH transport + SFTP layer for one configured host

State machine:
- DISCONNECTED: no handles held
- CONNECTED: SSH client and SFTP client both held

Contract:
- connect() opens SSH then SFTP; no-op while transport and SFTP channel are alive
- a failed SFTP open closes the SSH client before re-raising the original error
- close() closes SFTP then SSH, always ends DISCONNECTED, re-raises the first failure
- every transition and every handle read happens under one lock
"""

from __future__ import annotations

import enum
import threading
from functools import partial
from typing import Callable, Optional

import paramiko

from sftp_exporter import EXPORTER_VERSION
from sftp_exporter.config import ExporterConfig
from sftp_exporter.errors import ConnectionFailedError, NotConnectedError
from sftp_exporter.logging import emit_event


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


SSHFactory = Callable[[ExporterConfig], paramiko.SSHClient]
SFTPFactory = Callable[[paramiko.SSHClient], paramiko.SFTPClient]


def open_ssh_client(config: ExporterConfig) -> paramiko.SSHClient:
    """
    Open an authenticated SSH client

    Host keys:
    - known_hosts_file set -> load it, reject unknown hosts
    - else -> system host keys, auto-add unknown hosts
    """
    client = paramiko.SSHClient()

    try:
        if config.known_hosts_file:
            client.load_host_keys(config.known_hosts_file)
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.load_system_host_keys()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        explicit_credentials = bool(config.sftp_pass or config.sftp_key)

        client.connect(
            hostname=config.sftp_host,
            port=config.sftp_port,
            username=config.sftp_user,
            password=config.sftp_pass,
            key_filename=config.sftp_key,
            passphrase=config.sftp_key_passphrase,
            timeout=config.connect_timeout,
            banner_timeout=config.connect_timeout,
            auth_timeout=config.connect_timeout,
            look_for_keys=not explicit_credentials,
            allow_agent=not explicit_credentials,
        )
    except (paramiko.SSHException, OSError) as e:
        client.close()
        raise ConnectionFailedError(config.sftp_host, config.sftp_port, str(e)) from e

    return client


def open_sftp_client(ssh: paramiko.SSHClient, *, io_timeout: float) -> paramiko.SFTPClient:
    """
    Open the SFTP subsystem with a bounded per-request I/O timeout
    """
    sftp = ssh.open_sftp()
    sftp.get_channel().settimeout(io_timeout)
    return sftp


class SFTPSession:
    """
    Lock-guarded holder of the SSH client and the SFTP client

    Holds both by reference; one live connection per instance.
    """

    def __init__(
        self,
        config: ExporterConfig,
        *,
        ssh_factory: Optional[SSHFactory] = None,
        sftp_factory: Optional[SFTPFactory] = None,
    ) -> None:
        self._config = config
        self._ssh_factory = ssh_factory or open_ssh_client
        self._sftp_factory = sftp_factory or partial(open_sftp_client, io_timeout=config.io_timeout)

        self._lock = threading.Lock()
        self._state = SessionState.DISCONNECTED
        self._ssh: Optional[paramiko.SSHClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None

    @property
    def host(self) -> str:
        return self._config.sftp_host

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def _snapshot(self) -> tuple[Optional[paramiko.SSHClient], Optional[paramiko.SFTPClient]]:
        with self._lock:
            return self._ssh, self._sftp

    def _handles_alive(self) -> bool:
        # caller holds the lock
        if self._ssh is None or self._sftp is None:
            return False
        transport = self._ssh.get_transport()
        if transport is None or not transport.is_active():
            return False
        # server may close the sftp subsystem while the transport stays up
        channel = self._sftp.get_channel()
        return channel is not None and not channel.closed

    def connect(self) -> None:
        """
        Establish SSH then SFTP; idempotent while transport and channel are alive
        """
        with self._lock:
            if self._state is SessionState.CONNECTED:
                if self._handles_alive():
                    return
                # Dead transport or channel: drop stale handles, then reconnect below
                self._teardown_locked()

            try:
                ssh = self._ssh_factory(self._config)
            except ConnectionFailedError as e:
                self._emit("sftp_connect_failed", when="opening SSH connection", error=e)
                raise

            try:
                sftp = self._sftp_factory(ssh)
            except Exception as e:
                # No half-open connection survives a failed SFTP open
                self._close_quietly(ssh, "closing SSH connection after SFTP open failure")
                self._emit("sftp_connect_failed", when="opening SFTP connection", error=e)
                raise

            self._ssh = ssh
            self._sftp = sftp
            self._state = SessionState.CONNECTED

        emit_event(
            "sftp_connected",
            exporter_version=EXPORTER_VERSION,
            host=self._config.sftp_host,
            port=self._config.sftp_port,
        )

    def close(self) -> None:
        """
        Close SFTP then SSH; raise the first close failure after both were attempted
        """
        with self._lock:
            if self._state is SessionState.DISCONNECTED:
                return
            first_error = self._teardown_locked()

        if first_error is not None:
            raise first_error

        emit_event(
            "sftp_disconnected",
            exporter_version=EXPORTER_VERSION,
            host=self._config.sftp_host,
        )

    def sftp(self) -> paramiko.SFTPClient:
        """
        Live SFTP handle, or NotConnectedError
        """
        with self._lock:
            if self._state is not SessionState.CONNECTED or self._sftp is None:
                raise NotConnectedError()
            return self._sftp

    def _teardown_locked(self) -> Optional[Exception]:
        first_error: Optional[Exception] = None

        try:
            if self._sftp is not None:
                self._sftp.close()
        except Exception as e:
            first_error = e
            self._emit("sftp_close_failed", when="closing SFTP connection", error=e)

        try:
            if self._ssh is not None:
                self._ssh.close()
        except Exception as e:
            if first_error is None:
                first_error = e
            self._emit("sftp_close_failed", when="closing SSH connection", error=e)

        self._sftp = None
        self._ssh = None
        self._state = SessionState.DISCONNECTED
        return first_error

    def _close_quietly(self, ssh: paramiko.SSHClient, when: str) -> None:
        try:
            ssh.close()
        except Exception as e:
            self._emit("sftp_close_failed", when=when, error=e)

    def _emit(self, event_type: str, *, when: str, error: Exception) -> None:
        emit_event(
            event_type,
            exporter_version=EXPORTER_VERSION,
            host=self._config.sftp_host,
            when=when,
            error_type=type(error).__name__,
            message=str(error),
        )

    def __enter__(self) -> "SFTPSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
