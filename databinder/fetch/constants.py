"""Status codes and defaults shared by the retry engine, request builder and executor."""

# Status codes; *_MAX bounds are exclusive
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_FORBIDDEN = 403
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_REQUEST_TIMEOUT = 408
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Retry defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 300
DEFAULT_MAX_DELAY_MS = 10_000
DEFAULT_JITTER_FACTOR = 0.3
DEFAULT_ATTEMPT_TIMEOUT_MS = 30_000

# Request defaults
DEFAULT_CONTENT_TYPE = "application/json"
DEFAULT_ENDPOINT = "/data"
DEFAULT_SEARCH_ENDPOINT = "/search"
DEFAULT_SOURCE_TAG = "rest-api"

# Chunk size for streaming reads
DEFAULT_CHUNK_SIZE = 8192
