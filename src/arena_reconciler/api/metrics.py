"""Prometheus metrics for Arena Reconciler.

Exposes application-level metrics alongside the standard process metrics
from prometheus_client.

All metrics are module-level singletons registered on the default
``REGISTRY``.  They are safe to import from multiple modules because
prometheus_client deduplicates by metric name.

Metrics defined here:

  arena_approvals_total{action}
      Counter: approval transactions by outcome (created, updated, skipped).

  arena_approval_conflicts_total
      Counter: approvals that ended in a fatal reconciliation conflict.

  arena_backfill_projects_total{outcome}
      Counter: projects processed by backfill passes, by outcome
      (created, updated, skipped, error).

  arena_legacy_classified_total
      Counter: unknown-kind rows labelled ``legacy_ms`` by the classifier.

  http_requests_total{method, path, status}
      Counter: HTTP requests handled by the FastAPI application, labelled by
      HTTP method, normalised path, and response status code.

  http_request_duration_seconds{method, path}
      Histogram: HTTP request latency in seconds.

  celery_tasks_total{task_name, status}
      Counter: Celery task completions by task name and outcome (success, error).

  celery_task_duration_seconds{task_name}
      Histogram: Celery task wall-clock duration in seconds.

Usage::

    from arena_reconciler.api.metrics import arena_approvals_total
    arena_approvals_total.labels(action="created").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Reconciliation metrics
# ---------------------------------------------------------------------------

arena_approvals_total: Counter = Counter(
    "arena_approvals_total",
    "Approval transactions by outcome.",
    labelnames=["action"],
)
"""Counter incremented after each committed approval.

Labels:
  action: one of created, updated, skipped
"""

arena_approval_conflicts_total: Counter = Counter(
    "arena_approval_conflicts_total",
    "Approvals that failed with a reconciliation conflict after the retry.",
)

arena_backfill_projects_total: Counter = Counter(
    "arena_backfill_projects_total",
    "Projects processed by backfill passes, by outcome.",
    labelnames=["outcome"],
)
"""Counter incremented once per project per (non dry-run) backfill pass.

Labels:
  outcome: one of created, updated, skipped, error
"""

arena_legacy_classified_total: Counter = Counter(
    "arena_legacy_classified_total",
    "Unknown-kind arena rows labelled legacy_ms.",
)

# ---------------------------------------------------------------------------
# HTTP metrics (populated by middleware in main.py)
# ---------------------------------------------------------------------------

http_requests_total: Counter = Counter(
    "http_requests_total",
    "HTTP requests handled by the FastAPI application.",
    labelnames=["method", "path", "status"],
)
"""Counter incremented after every HTTP response.

Labels:
  method: HTTP method (GET, POST, ...)
  path:   route template where available, raw path otherwise
  status: HTTP response status code as string (e.g. '200', '404')
"""

http_request_duration_seconds: Histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Celery task metrics (populated in workers/tasks.py)
# ---------------------------------------------------------------------------

celery_tasks_total: Counter = Counter(
    "celery_tasks_total",
    "Celery task completions by task name and outcome.",
    labelnames=["task_name", "status"],
)
"""Counter incremented at the end of each Celery task execution.

Labels:
  task_name: short task name (e.g. backfill_arenas)
  status:    'success' or 'error'
"""

celery_task_duration_seconds: Histogram = Histogram(
    "celery_task_duration_seconds",
    "Celery task wall-clock duration in seconds.",
    labelnames=["task_name"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0],
)


def record_backfill_summary(summary_dict: dict) -> None:
    """Increment the backfill counters from a camelCase summary dict."""
    for outcome, key in (
        ("created", "createdCount"),
        ("updated", "updatedCount"),
        ("skipped", "skippedCount"),
    ):
        count = summary_dict.get(key, 0)
        if count:
            arena_backfill_projects_total.labels(outcome=outcome).inc(count)
    errors = len(summary_dict.get("errors", []))
    if errors:
        arena_backfill_projects_total.labels(outcome="error").inc(errors)


# ---------------------------------------------------------------------------
# Response helper
# ---------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Generate a Prometheus text-format metrics response.

    Returns:
        A tuple of (body_bytes, content_type_string) suitable for constructing
        a FastAPI ``Response`` object.
    """
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: PLC0415

    return generate_latest(), CONTENT_TYPE_LATEST
