from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import APIRouter, Response

router = APIRouter()

# Metrics Definitions
JOBS_ENQUEUED = Counter('jobs_enqueued_total', 'Total jobs inserted as pending', ['job_type'])
JOB_LEASE_TOTAL = Counter('job_lease_total', 'Total jobs leased by workers', ['job_type'])
JOB_FAILURES = Counter('job_failures_total', 'Total job failures', ['job_type', 'kind']) # kind=retryable|final
JOB_COMPLETE_TOTAL = Counter('job_complete_total', 'Total jobs completed successfully', ['job_type'])
JOB_LEASE_TIME = Histogram('job_start_delay_seconds', 'Time from scheduled_at to lease', buckets=[0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0])

JOB_DURATION = Histogram('job_duration_seconds', 'Time from lease to completion', buckets=[1.0, 5.0, 10.0, 60.0, 120.0])

JOBS_INFLIGHT = Gauge(
    "jobs_inflight",
    "Number of jobs currently being processed by this worker runtime"
)

NOTIFICATION_EVENTS = Counter(
    "notification_events_total",
    "Domain events accepted into merge buffers",
    ["rule"]
)

NOTIFICATIONS_SENT = Counter(
    "notifications_sent_total",
    "Merged notifications recorded as notification_sent jobs",
    ["rule"]
)

NOTIFICATIONS_THROTTLED = Counter(
    "notifications_throttled_total",
    "Flushes dropped because the throttle window had not elapsed",
    ["rule"]
)

EVENTS_MERGED = Histogram(
    "notification_events_merged",
    "Number of events folded into one notification",
    buckets=[1, 2, 3, 5, 10, 20, 50]
)

@router.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
