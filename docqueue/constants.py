"""
Application constants.
Centralized location for all constant values used across the application.
"""

# Queue defaults
DEFAULT_QUEUE_COLLECTION = "queue"
DEFAULT_BLOCK_DURATION_MS = 30_000
DEFAULT_MAX_RETRIES = 5
DEFAULT_WORKER_ID = ""

# Error messages surfaced to callers
ERROR_PAYLOAD_MISSING = "Payload missing."
ERROR_PAYLOAD_INVALID = "Payload is no valid Mongoose document."
ERROR_JOB_NOT_FOUND = "Job id invalid, job not found."

# Worker outcome labels
STATUS_ACKED = "acked"
STATUS_ERRORED = "errored"

# Metrics names
METRIC_QUEUE_DEPTH = "docqueue_depth"
METRIC_JOBS_ADDED = "docqueue_jobs_added_total"
METRIC_JOBS_CLAIMED = "docqueue_jobs_claimed_total"
METRIC_JOBS_FINISHED = "docqueue_jobs_finished_total"
METRIC_JOBS_CLEANED = "docqueue_jobs_cleaned_total"
METRIC_JOB_DURATION = "docqueue_job_duration_seconds"

# Trace span names
SPAN_ADD_JOB = "queue.add"
SPAN_GET_JOB = "queue.get"
SPAN_ACK_JOB = "queue.ack"
SPAN_ERROR_JOB = "queue.error"
SPAN_CLEAN_QUEUE = "queue.clean"
SPAN_RESET_QUEUE = "queue.reset"
SPAN_PROCESS_JOB = "worker.process"
