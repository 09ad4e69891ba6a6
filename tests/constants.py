"""Shared test constants and configuration.

Centralizes timeouts and fixture values to keep the suite consistent.
"""

# =============================================================================
# Timeout Constants (seconds)
# =============================================================================

# Timeout for HTTP requests against the local callback listener
HTTP_TIMEOUT: float = 5.0

# Upper bound when awaiting a login attempt in tests
LOGIN_TIMEOUT: float = 10.0

# Authorization window used by timeout tests
SHORT_AUTH_TIMEOUT: float = 0.3

# Maintenance timer interval used by background tests
FAST_INTERVAL: float = 0.02

# Upper bound when polling for a background condition
POLL_DEADLINE: float = 5.0


# =============================================================================
# Fixture Values
# =============================================================================

CLIENT_ID = "Iv1.testclientid"
CLIENT_SECRET = "test-client-secret"  # noqa: S105
ACCESS_TOKEN = "tok_1"  # noqa: S105
SCOPE = "user:email read:user"
