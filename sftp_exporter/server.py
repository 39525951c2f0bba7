"""
sftp_exporter.server
AUTHOR: carter-vin

HTTP scrape endpoint (WSGI)

Routes:
- GET /metrics -> 200 exposition text, or 500 + error text when the pass fails
- GET /healthz -> 200 "healthy"
- else -> 404; non-GET -> 405

Every request is logged as an http_request event.
"""

from __future__ import annotations

import threading
import time
from socketserver import ThreadingMixIn
from typing import Callable, Iterable, Optional
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CONTENT_TYPE_LATEST

from sftp_exporter import EXPORTER_VERSION
from sftp_exporter.collectors.base import run_collector
from sftp_exporter.collectors.sftp import SFTPCollector
from sftp_exporter.config import ExporterConfig
from sftp_exporter.logging import emit_event
from sftp_exporter.model import render_exposition

SCRAPE_TIMEOUT_HEADER = "HTTP_X_PROMETHEUS_SCRAPE_TIMEOUT_SECONDS"

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        # requests are logged as events by with_logging
        pass


def _scrape_deadline(environ: dict, default: float) -> Optional[float]:
    """
    Seconds the pass may run: scraper header first, then config (0 = none)
    """
    raw = environ.get(SCRAPE_TIMEOUT_HEADER)
    if raw:
        try:
            value = float(raw)
            if value > 0:
                return value
        except ValueError:
            pass
    return default if default > 0 else None


def _respond(start_response, status: str, body: bytes, content_type: str) -> list[bytes]:
    start_response(status, [("Content-Type", content_type), ("Content-Length", str(len(body)))])
    return [body]


def make_app(collector: SFTPCollector, *, scrape_timeout: float = 0.0) -> WSGIApp:
    def app(environ, start_response):
        path = environ.get("PATH_INFO", "")
        method = environ.get("REQUEST_METHOD", "GET")

        if method != "GET":
            return _respond(start_response, "405 Method Not Allowed", b"method not allowed\n", "text/plain")

        if path == "/healthz":
            return _respond(start_response, "200 OK", b"healthy", "text/plain")

        if path != "/metrics":
            return _respond(start_response, "404 Not Found", b"not found\n", "text/plain")

        cancel = threading.Event()
        deadline = _scrape_deadline(environ, scrape_timeout)
        timer = None
        if deadline is not None:
            timer = threading.Timer(deadline, cancel.set)
            timer.daemon = True
            timer.start()

        try:
            outcome = run_collector("sftp", collector.collect, cancel=cancel)
        finally:
            if timer is not None:
                timer.cancel()

        if not outcome.ok:
            body = f"scrape failed: {outcome.error_type}: {outcome.error_message}\n".encode("utf-8")
            return _respond(start_response, "500 Internal Server Error", body, "text/plain; charset=utf-8")

        return _respond(start_response, "200 OK", render_exposition(outcome.value), CONTENT_TYPE_LATEST)

    return app


def with_logging(app: WSGIApp) -> WSGIApp:
    """
    Wrap a WSGI app; emit one http_request event per request
    """

    def logged(environ, start_response):
        start = time.monotonic()
        captured: dict[str, str] = {}

        def _start_response(status, headers, exc_info=None):
            captured["status"] = status
            return start_response(status, headers, exc_info)

        try:
            return app(environ, _start_response)
        finally:
            status = captured.get("status", "500")
            emit_event(
                "http_request",
                exporter_version=EXPORTER_VERSION,
                method=environ.get("REQUEST_METHOD", ""),
                path=environ.get("PATH_INFO", ""),
                remote_addr=environ.get("REMOTE_ADDR", ""),
                status=int(status.split()[0]),
                elapsed_ms=int((time.monotonic() - start) * 1000),
            )

    return logged


def build_server(config: ExporterConfig, collector: SFTPCollector) -> WSGIServer:
    app = with_logging(make_app(collector, scrape_timeout=config.scrape_timeout))
    return make_server(
        config.bind_address,
        config.port,
        app,
        server_class=_ThreadingWSGIServer,
        handler_class=_QuietHandler,
    )
