"""Custom exceptions for provkit package."""


class ProvkitError(Exception):
    """Base exception class for all provkit errors."""


class TransportError(ProvkitError):
    """Raised when a request fails before any HTTP response arrives.

    Covers connection failures and connect/read timeouts. The underlying
    ``requests`` exception is kept as ``__cause__``.

    Attributes:
        method: HTTP method of the failed request.
        url: Target URL of the failed request.
    """

    def __init__(self, method: str, url: str, reason: str) -> None:
        super().__init__(f"{method} {url} failed: {reason}")
        self.method = method
        self.url = url


class HttpStatusError(ProvkitError):
    """Raised when a call ends with a non-2xx response.

    This is terminal for the call: any direct-auth retry has already been
    spent by the time it is raised.

    Attributes:
        status_code: HTTP status code of the final response.
        body: Raw response body text.
        method: HTTP method of the call.
        url: Target URL of the call.
    """

    def __init__(self, status_code: int, body: str, method: str, url: str) -> None:
        super().__init__(f"Could not {method} > {url} : {body} Errorcode: {status_code}")
        self.status_code = status_code
        self.body = body
        self.method = method
        self.url = url


class LoginError(ProvkitError):
    """Raised when a form login is rejected by the remote platform.

    Attributes:
        url: Login form URL.
        status_code: HTTP status of the login response.
    """

    def __init__(self, url: str, status_code: int, username: str) -> None:
        super().__init__(f"Could not authenticate {username} at {url} (status {status_code})")
        self.url = url
        self.status_code = status_code


class MissingCredentialsError(ProvkitError):
    """Raised when direct authentication is needed but no credentials are available."""


class ResponseDecodeError(ProvkitError):
    """Raised when a successful response body cannot be decoded into the requested shape."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Could not decode response from {url}: {reason}")
        self.url = url


class PreconditionEvaluationError(ProvkitError):
    """Raised when a precondition check fails unexpectedly.

    A conflict is not an error: it is reported as a ``PreconditionFailure``.
    This exception means the check itself could not be evaluated. The
    original error is kept as ``__cause__``.

    Attributes:
        adapter_name: Name of the adapter running the check.
        candidate_key: Resource key being checked.
    """

    def __init__(self, adapter_name: str, candidate_key: str, reason: str) -> None:
        super().__init__(
            f"'{adapter_name}' found a precondition failure for project '{candidate_key}': {reason}"
        )
        self.adapter_name = adapter_name
        self.candidate_key = candidate_key
