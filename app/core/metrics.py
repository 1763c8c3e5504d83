"""Prometheus metric inventory.

All metrics are declared here and imported by the module that owns the
behavior being measured. HTTP metrics are filled in by MetricsMiddleware;
the domain counters are incremented by the services.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Report endpoints run many aggregate queries, so the upper buckets matter.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Platform metrics
# ---------------------------------------------------------------------------

RATE_LIMIT_HITS = Counter(
    "rate_limit_hits_total",
    "Requests rejected by rate limiting (429s)",
    ["key_type"],  # limited route scope: login|password_reset
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Report cache lookups by result",
    ["operation"],  # hit|miss|invalidate
)

LEARNING_BLOCK_COMPLETIONS = Counter(
    "learning_block_completions_total",
    "Learning blocks marked completed (first completion only)",
)

ASSESSMENT_ATTEMPTS = Counter(
    "assessment_attempts_total",
    "Scored assessment attempts by outcome",
    ["outcome"],  # passed|failed
)

MEDIA_UPLOADS = Counter(
    "media_uploads_total",
    "Uploaded media files by storage category",
    ["category"],  # images|documents|videos|audio
)

AI_PROXY_REQUESTS = Counter(
    "ai_proxy_requests_total",
    "Calls forwarded to the AI backend by result",
    ["endpoint", "result"],  # result: ok|error
)
