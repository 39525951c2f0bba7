"""
sftp_exporter.collectors.base
AUTHOR: carter-vin

Light result wrapper -> let callers at the process edge (HTTP handler, CLI)
turn a failed collection into a response instead of a crash
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class CollectorOutcome:
    """
    Normalized collector result
    - ok: false=failure, error details in error fields
    - value: collector result object if ok=true
    - elapsed_ms: wall time of the call
    """

    name: str
    ok: bool
    elapsed_ms: int
    value: Optional[Any] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None


def run_collector(name: str, fn, *args, **kwargs) -> CollectorOutcome:
    """
    Run collector & collect failure as data
    """
    start = time.monotonic()
    try:
        v = fn(*args, **kwargs)
        return CollectorOutcome(
            name=name,
            ok=True,
            elapsed_ms=int((time.monotonic() - start) * 1000),
            value=v,
        )
    except Exception as e:
        return CollectorOutcome(
            name=name,
            ok=False,
            elapsed_ms=int((time.monotonic() - start) * 1000),
            error_type=type(e).__name__,
            error_message=str(e),
        )
