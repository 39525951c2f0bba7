"""sftp_exporter: Prometheus metrics for a remote tree reachable over SFTP."""

__version__ = "0.1.0"

EXPORTER_VERSION = __version__
