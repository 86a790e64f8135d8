class JobError(Exception):
    """Base exception for job queue errors."""
    pass

class JobNotFoundError(JobError):
    def __init__(self, job_id):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id

class InvalidJobStateError(JobError):
    def __init__(self, current_status, target_status):
        super().__init__(f"Cannot transition from {current_status} to {target_status}")
        self.current_status = current_status
        self.target_status = target_status

class JobStoreError(JobError):
    """The job store rejected a read or write (I/O, constraint, connection)."""
    pass

class PayloadValidationError(JobError):
    def __init__(self, job_type: str, detail: str):
        super().__init__(f"Invalid payload for job type {job_type}: {detail}")
        self.job_type = job_type
        self.detail = detail

class NotificationError(Exception):
    """Base exception for the notification engine."""
    pass

class DirectoryError(NotificationError):
    pass
