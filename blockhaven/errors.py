class AdminError(Exception):
    """Base for errors surfaced by the admin gateway."""
    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CommandValidationError(AdminError):
    code = "VALIDATION_FAILED"
    status_code = 400


class AuthError(AdminError):
    code = "AUTH_INVALID"
    status_code = 401


class ForbiddenError(AuthError):
    code = "AUTH_FORBIDDEN"
    status_code = 403


class RateLimitError(AdminError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamUnavailable(AdminError):
    """Control plane, execution service or log source unreachable."""
    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503


class LogSourceNotConfigured(UpstreamUnavailable):
    code = "LOG_SOURCE_NOT_CONFIGURED"


class InstanceNotFound(UpstreamUnavailable):
    code = "INSTANCE_NOT_FOUND"
    status_code = 404


class ExecutionError(AdminError):
    """A remote job ended in a non-success terminal state."""
    code = "EXECUTION_FAILED"
    status_code = 500


class ExecutionTimeout(ExecutionError):
    """The local poll budget ran out before the remote job finished."""
    code = "EXECUTION_TIMEOUT"
