from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP Requests",
    ["method", "endpoint", "http_status"]
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["endpoint"]
)

EXCEPTION_COUNT = Counter(
    "http_exceptions_total",
    "Total exceptions",
    ["endpoint"]
)

NOTIFICATIONS_CREATED = Counter(
    "notifications_created_total",
    "Notifications written to the ledger",
    ["kind"]
)

NOTIFICATIONS_DEDUPED = Counter(
    "notifications_deduplicated_total",
    "Notifications suppressed by the one-hour dedupe window",
    ["kind"]
)

SWEEP_TASK_FAILURES = Counter(
    "sweep_task_failures_total",
    "Per-task failures isolated during a threshold sweep"
)

EMAIL_SEND_FAILURES = Counter(
    "email_send_failures_total",
    "Outbound emails that failed to send"
)
