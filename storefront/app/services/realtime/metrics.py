# storefront/app/services/realtime/metrics.py
from prometheus_client import Counter, Gauge

REALTIME_CONNECTIONS = Gauge(
    "realtime_connections",
    "Live real-time connections",
    ["role"]  # anonymous | user | admin
)

REALTIME_EVENTS_EMITTED_TOTAL = Counter(
    "realtime_events_emitted_total",
    "Envelopes handed to the transport",
    ["type"]
)

REALTIME_DELIVERY_FAILURES_TOTAL = Counter(
    "realtime_delivery_failures_total",
    "Per-connection send failures"
)

REALTIME_AUTH_FAILURES_TOTAL = Counter(
    "realtime_auth_failures_total",
    "Rejected authenticate messages",
    ["code"]
)

REALTIME_SCHEDULER_FAULTS_TOTAL = Counter(
    "realtime_scheduler_faults_total",
    "Interval loop iterations that raised",
    ["loop"]
)

PRESENCE_ONLINE_USERS = Gauge(
    "presence_online_users",
    "Users with a non-expired presence record"
)
