"""Prometheus metrics for the invoice agent API.

Exposes key metrics for monitoring:
- Request counts by route and status
- Request duration histograms
- Language-model operation outcomes
- Anomaly verdicts, payment intents and browser automation runs

Based on Prometheus best practices:
https://prometheus.io/docs/practices/naming/
"""

from prometheus_client import Counter, Histogram, generate_latest
from prometheus_client.openmetrics.exposition import CONTENT_TYPE_LATEST

# Request metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Agent metrics
llm_operations_total = Counter(
    "llm_operations_total",
    "Total language-model backed operations",
    ["operation", "status"],  # extraction/anomaly/email; success, failed
)

llm_operation_duration_seconds = Histogram(
    "llm_operation_duration_seconds",
    "Duration of language-model backed operations in seconds",
    ["operation"],
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

anomaly_verdicts_total = Counter(
    "anomaly_verdicts_total",
    "Anomaly detection verdicts",
    ["verdict"],  # anomalous, normal, insufficient_history
)

document_upload_size_bytes = Histogram(
    "document_upload_size_bytes",
    "Invoice document upload size in bytes",
    buckets=(1024, 10240, 102400, 1048576, 10485760),  # 1KB to 10MB
)

# Payments
payment_intents_total = Counter(
    "payment_intents_total",
    "Payment intents requested from the gateway",
    ["status"],  # created, failed
)

# Browser automation
browser_runs_total = Counter(
    "browser_runs_total",
    "Browser automation runs",
    ["provider", "status"],  # success, failed
)


def get_metrics() -> tuple[bytes, str]:
    """Generate Prometheus metrics in text format.

    Returns:
        Tuple of (metrics bytes, content type)
    """
    return generate_latest(), CONTENT_TYPE_LATEST
