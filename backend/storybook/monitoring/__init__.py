"""Monitoring helpers for provider instrumentation."""

from .provider_metrics import (
    record_provider_stage,
    emit_provider_event,
    sentry_warn,
)

__all__ = [
    "record_provider_stage",
    "emit_provider_event",
    "sentry_warn",
]
