"""
Provider call metrics, one JSON object per line.

Each outbound Gemini/Freepik call is wrapped in ``record_provider_stage``;
pipeline events (retries, partial books) go through ``emit_provider_event``.
"""

import json
import os
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import sentry_sdk

from ..config import DATA_DIR

METRICS_LOG = Path(
    os.getenv("PROVIDER_METRICS_LOG", str(DATA_DIR / "observability" / "provider_metrics.ndjson"))
).expanduser()
METRICS_LOG.parent.mkdir(parents=True, exist_ok=True)

_lock = threading.Lock()


def _append(record: Dict) -> None:
    record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    line = json.dumps(record, ensure_ascii=True, default=str)
    with _lock, METRICS_LOG.open("a", encoding="utf-8") as fh:
        fh.write(line + "\n")


@contextmanager
def record_provider_stage(stage: str, context: Optional[Dict] = None):
    """
    Time one provider call. The yielded record's ``context`` can be
    extended inside the block (e.g. with the upstream status code).
    """
    record = {"event": stage, "status": "ok", "context": dict(context or {})}
    started = time.perf_counter()
    try:
        yield record
    except Exception as exc:
        record["status"] = "error"
        record["error"] = str(exc)
        raise
    finally:
        record["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
        _append(record)


def emit_provider_event(event: str, context: Optional[Dict] = None) -> None:
    _append({"event": event, "status": "ok", "context": dict(context or {})})


def sentry_warn(message: str) -> None:
    """Report a non-fatal condition; a no-op when Sentry is not initialised."""
    sentry_sdk.capture_message(message, level="warning")
