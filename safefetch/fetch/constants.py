"""HTTP constants for the request execution engine.

Centralizes status ranges, defaults, and fixed error messages so the
pipeline stages agree on them.
"""

# HTTP Status Code Ranges
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500

# Retry defaults
DEFAULT_RETRIES = 2
DEFAULT_BASE_DELAY_MS = 300

# Headers
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_RETRY_AFTER = "Retry-After"
JSON_CONTENT_TYPE = "application/json"

# Fixed error messages
NETWORK_ERROR_MESSAGE = "Network request failed"
REQUEST_BUILD_ERROR_MESSAGE = "Failed to build request"
ABORTED_MESSAGE = "Request aborted"
VALIDATION_ERROR_MESSAGE = "Validation failed"

# Log component name
COMPONENT_FETCH = "safe_fetch"
