from enum import StrEnum, auto

class JobStatus(StrEnum):
    PENDING = auto()      # Waiting for scheduled_at, eligible for lease
    PROCESSING = auto()   # Claimed by a worker
    COMPLETED = auto()    # Handler succeeded
    FAILED = auto()       # Attempts exhausted, cancelled, or no handler

ACTIVE_STATUSES = (JobStatus.PENDING, JobStatus.PROCESSING)
TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)

class NotificationRule(StrEnum):
    MANUAL = auto()
    POINTS_UPDATED = auto()
    REWARD_EARNED = auto()
    LOCATION_ENTER = auto()

class PointsDisplay(StrEnum):
    POINTS = auto()
    UNUSED_POINTS = auto()

# Job types produced by the core itself
FLUSH_BUFFER_JOB = "flush_buffer"
NOTIFICATION_SENT_JOB = "notification_sent"
