"""
Verification telemetry.

Tenant safe: no payloads, hashes, content ids or record ids ever leave
the process. Only categorical outcomes, latencies and exception class names.
"""
import os
import logging
from typing import Literal

from azure.monitor.opentelemetry import configure_azure_monitor
from opentelemetry.trace import get_current_span

logger = logging.getLogger("verianchor.telemetry")

VerificationOutcome = Literal[
    "verified", "mismatch", "missing_reference", "no_entries", "missing_fields"
]
_OUTCOMES = ("verified", "mismatch", "missing_reference", "no_entries", "missing_fields")


def init_telemetry():
    """
    Initialize Azure Application Insights via OpenTelemetry.
    No-op without a connection string (local / tests).
    """
    connection_string = os.getenv("AZURE_APPINSIGHTS_CONNECTION_STRING")

    if not connection_string:
        return

    configure_azure_monitor(
        connection_string=connection_string
    )


def emit_verification_telemetry(outcome: VerificationOutcome, latency_ms: int):
    """
    The single custom event for authenticity checks. Attributes are locked.
    """
    assert outcome in _OUTCOMES, f"outcome must be one of {_OUTCOMES}, got {outcome}"
    assert isinstance(latency_ms, int), "latency_ms must be int"

    span = get_current_span()
    if not span:
        return

    span.add_event(
        name="verianchor.verification",
        attributes={
            "outcome": outcome,
            "latency_ms": latency_ms,
        }
    )


def scrub_exception_for_telemetry(exception: Exception) -> str:
    """Never ship str(e): it can carry record identifiers. Class name only."""
    return type(exception).__name__


def emit_exception_telemetry(exception: Exception):
    span = get_current_span()
    if not span:
        return

    span.add_event(
        name="verianchor.exception",
        attributes={
            "exception_type": scrub_exception_for_telemetry(exception)
        }
    )
