# File: docpipeline/core/metrics.py
from prometheus_client import Counter, Histogram

# Ingestion
UPLOADS_TOTAL = Counter(
    "docpipeline_uploads_total",
    "Total number of document ingestion attempts.",
    ["content_type", "status"]
)

INGESTION_STEP_FAILURES_TOTAL = Counter(
    "docpipeline_ingestion_step_failures_total",
    "Ingestion failures by the step that failed.",
    ["step"]
)

UPLOAD_FILE_SIZE_BYTES = Histogram(
    "docpipeline_upload_file_size_bytes",
    "Size of uploaded files in bytes.",
    ["content_type"],
    buckets=(1024*10, 1024*50, 1024*100, 1024*512, 1024*1024, 1024*1024*5, 1024*1024*10, 1024*1024*50)
)

REQUEST_PROCESSING_DURATION_SECONDS = Histogram(
    "docpipeline_request_processing_duration_seconds",
    "Time taken to process an HTTP request.",
    ["method", "path"]
)

# Queue
KAFKA_MESSAGES_PRODUCED_TOTAL = Counter(
    "docpipeline_kafka_messages_produced_total",
    "Total number of messages produced to Kafka.",
    ["topic", "status"]
)

MESSAGES_CONSUMED_TOTAL = Counter(
    "docpipeline_messages_consumed_total",
    "Total number of Kafka deliveries handled by the worker.",
    ["topic", "status"]
)

# Processing
PROCESSING_OUTCOMES_TOTAL = Counter(
    "docpipeline_processing_outcomes_total",
    "Outcome of each processing delivery.",
    ["outcome"]
)

PROCESSING_DURATION_SECONDS = Histogram(
    "docpipeline_processing_duration_seconds",
    "Time taken to process a single document.",
    ["content_type"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60]
)

# Retrieval / deletion
DELETIONS_TOTAL = Counter(
    "docpipeline_deletions_total",
    "Document deletion requests.",
    ["status"]
)

# Reconciliation
RECONCILIATION_ACTIONS_TOTAL = Counter(
    "docpipeline_reconciliation_actions_total",
    "Actions taken or findings reported by the reconciliation sweep.",
    ["action"]
)
