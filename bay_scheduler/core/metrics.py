from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "path"],
)

SLOT_RESERVATIONS = Counter(
    "slot_reservations_total",
    "Atomic slot reservation attempts by outcome",
    ["outcome"],
)

RESCHEDULE_COMPENSATIONS = Counter(
    "reschedule_compensations_total",
    "Re-reservations of original slots after a failed reschedule",
    ["outcome"],
)

TECHNICIAN_ASSIGNMENTS = Counter(
    "technician_assignments_total",
    "Technician matching results",
    ["outcome"],
)

NOTIFICATIONS = Counter(
    "notifications_total",
    "Outbound customer notifications by kind and outcome",
    ["kind", "outcome"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
