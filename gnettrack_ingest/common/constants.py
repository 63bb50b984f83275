"""Application constants."""

USER_AGENT = "gnettrack-ingest/0.3 (+drive-test uploader)"

MEASUREMENT_NAME = "network_measurements"
SOURCE_TAG_KEY = "measurement_type"
SOURCE_TAG_VALUE = "gnettrack"
WRITE_PRECISION = "ns"

FORMAT_TEXT = "text"
FORMAT_KML = "kml"
KML_EXTENSIONS = (".kml",)
SNIFF_BYTES = 4096
DRY_RUN_SAMPLE_LINES = 3

STATUS_COMPLETED = "completed"
STATUS_PARTIAL = "partial"
STATUS_ABORTED = "aborted"

EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "batch",
    "error_code",
    "message",
)
