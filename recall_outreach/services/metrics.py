"""CloudWatch custom metrics emitter with background batching.

Tracks the calls the recall agent makes to things that can be slow or
fail: the Anthropic model, the booking transaction and the RabbitMQ
publisher.

* Data points are buffered in memory under a lock.
* With ``METRICS_ENABLED=true`` a daemon thread pushes the buffer to
  CloudWatch every ``FLUSH_INTERVAL_SECONDS``; otherwise points are only
  logged at DEBUG.
* Each ``put_metric_data`` call carries at most ``MAX_BATCH_SIZE`` points.

>>> from recall_outreach.services.metrics import metrics
>>> metrics.record_success("anthropic", "llm_invoke", latency_ms=812.0)
>>> metrics.record_failure("scheduler", "book", error_type="slot_taken")
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "RecallOutreach"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch API limit per PutMetricData call


class MetricsClient:
    """Batched CloudWatch metrics publisher."""

    def __init__(self) -> None:
        self._enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    def _get_cw_client(self):
        """Create the boto3 CloudWatch client on first use."""
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    # ── Public API ────────────────────────────────────────────────────

    def record_success(self, service: str, operation: str, latency_ms: float) -> None:
        """Count a successful call and record its latency."""
        now = datetime.now(UTC)
        self._append(self._point("Calls/Count", service, now, 1, "Count", Status="success"))
        self._append(
            self._point("Calls/Latency", service, now, latency_ms, "Milliseconds", Operation=operation)
        )
        logger.debug("Metric: %s %s success latency=%.1fms", service, operation, latency_ms)

    def record_failure(
        self,
        service: str,
        operation: str,
        error_type: str,
        latency_ms: float = 0,
    ) -> None:
        """Count a failed call, tagged with *error_type*."""
        now = datetime.now(UTC)
        self._append(self._point("Calls/Count", service, now, 1, "Count", Status="failure"))
        self._append(self._point("Calls/Errors", service, now, 1, "Count", ErrorType=error_type))
        if latency_ms > 0:
            self._append(
                self._point("Calls/Latency", service, now, latency_ms, "Milliseconds", Operation=operation)
            )
        logger.debug(
            "Metric: %s %s failure error=%s latency=%.1fms",
            service, operation, error_type, latency_ms,
        )

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        if not self._enabled:
            logger.debug("Metrics flush skipped (not enabled): %d items", len(batch))
            return 0

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    # ── Internal ──────────────────────────────────────────────────────

    @staticmethod
    def _point(
        name: str, service: str, timestamp: datetime, value: float, unit: str, **dims: str,
    ) -> dict[str, Any]:
        dimensions = [{"Name": "Service", "Value": service}]
        dimensions += [{"Name": k, "Value": v} for k, v in dims.items()]
        return {
            "MetricName": name,
            "Dimensions": dimensions,
            "Timestamp": timestamp,
            "Value": value,
            "Unit": unit,
        }

    def _append(self, metric_data: dict[str, Any]) -> None:
        with self._lock:
            self._buffer.append(metric_data)

    def _start_flush_thread(self) -> None:
        """Start a daemon thread that flushes metrics periodically."""

        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                try:
                    self.flush()
                except Exception:
                    logger.exception("Metrics flush thread error")

        t = threading.Thread(target=_loop, daemon=True, name="metrics-flush")
        t.start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


metrics = MetricsClient()
