"""
Error taxonomy for Drive access.

Only these are ever raised out of the service layer; partial listings and
cache failures are logged and absorbed instead.
"""


class DriveError(Exception):
    """Base class for failures surfaced to the HTTP layer."""


class NoCredentialsAvailable(DriveError):
    """Every identity in an acquisition batch failed to produce a token."""


class RetryBudgetExhausted(DriveError):
    """The resilient client ran out of attempts for one logical call."""

    def __init__(self, url: str, attempts: int, last_error: str = ""):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up on {url} after {attempts} attempts: {last_error or 'rate limited'}")


class NotFound(DriveError):
    """A referenced folder or file does not exist or is not accessible."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Not found: {item_id}")


class UpstreamError(DriveError):
    """Drive answered a single-entity request with a server error."""

    def __init__(self, url: str, status_code: int):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Drive returned HTTP {status_code} for {url}")
