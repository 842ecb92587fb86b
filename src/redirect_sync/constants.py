"""Constants shared by the redirect transfer engine.

Named values for the CSV wire format, checkpoint layout and retry budgets.
"""

# -----------------------------------------------------------------------------
# CSV Wire Format
# -----------------------------------------------------------------------------

# Field separator used in every redirect CSV (import, export and delete)
DELIMITER: str = ";"

# Fixed column order of exported files
FIELDS: tuple[str, ...] = ("from", "to", "type", "endDate", "binding")

# Columns whose values are paths and get the delimiter percent-encoded
ENCODED_FIELDS: frozenset[str] = frozenset({"from", "to"})


# -----------------------------------------------------------------------------
# Batching and Concurrency
# -----------------------------------------------------------------------------

# Redirects sent per import/delete request
MAX_ENTRIES_PER_REQUEST: int = 10

# Un-drained export page submissions allowed at once
DEFAULT_EXPORT_CONCURRENCY: int = 5

# Rows buffered before each write to the export file
DEFAULT_WRITE_BATCH_SIZE: int = 100

# Wall-clock limit for one (retried) export page fetch, in seconds
PAGE_FETCH_TIMEOUT_S: float = 60.0

# Interval between polls while waiting for the write queue to drain
DRAIN_POLL_INTERVAL_S: float = 0.01


# -----------------------------------------------------------------------------
# Checkpoints
# -----------------------------------------------------------------------------

METAINFO_FILE: str = ".redirects_metainfo.json"


# -----------------------------------------------------------------------------
# Retry Budgets
# -----------------------------------------------------------------------------

# Whole-operation restarts before giving up
MAX_RESTARTS: int = 10

# Pause between whole-operation restarts, in seconds
RESTART_INTERVAL_S: float = 5.0

# Per-call retries (attempts = retries + 1)
DEFAULT_MAX_RETRIES: int = 5
DEFAULT_BASE_DELAY_S: float = 1.0
DEFAULT_MAX_DELAY_S: float = 30.0

# Upper bound (exclusive) of the random jitter fraction added to backoff delays
BACKOFF_JITTER: float = 0.1
