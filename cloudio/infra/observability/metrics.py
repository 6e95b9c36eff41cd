from prometheus_client import Counter

# mode label is "single_shot" or "multipart"; keep label values low-cardinality
TRANSFER_BYTES = Counter(
    "cloudio_transfer_bytes_total",
    "Bytes sent to object storage",
    ["mode"],
)

TRANSFER_PARTS = Counter(
    "cloudio_transfer_parts_total",
    "Multipart upload parts sent to object storage",
)

TRANSFER_FAILURES = Counter(
    "cloudio_transfer_failures_total",
    "Failed object storage calls",
    ["operation"],
)

DELETED_OBJECTS = Counter(
    "cloudio_deleted_objects_total",
    "Object keys submitted for batch deletion",
)
