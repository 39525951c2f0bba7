"""
sftp_exporter.errors
AUTHOR: carter-vin

Error taxonomy

- lower layers raise typed errors, no retry
- the collector wraps whatever failed in ScrapeError (chained)
"""

from __future__ import annotations


class ExporterError(Exception):
    """Base for every error raised by sftp_exporter."""


class ConfigError(ExporterError):
    pass


class ConnectionFailedError(ExporterError):
    """
    SSH transport could not be established (socket, handshake, auth)
    """

    def __init__(self, host: str, port: int, message: str) -> None:
        super().__init__(f"cannot connect to {host}:{port}: {message}")
        self.host = host
        self.port = port


class NotConnectedError(ExporterError):
    def __init__(self, message: str = "no live SFTP session") -> None:
        super().__init__(message)


class RemoteProtocolError(ExporterError):
    """
    Server answered an SFTP request with an error status
    """

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.remote_message = message


class TraversalError(ExporterError):
    """
    Walk aborted; the remaining entries of that walk are not produced
    """

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"walk aborted at {path}: {message}")
        self.path = path


class WalkCancelledError(TraversalError):
    def __init__(self, path: str) -> None:
        super().__init__(path, "cancelled")


class ScrapeError(ExporterError):
    """
    One scrape pass failed; no metrics are reported for it
    """
