from typing import Any, Mapping, Optional


class FitPlanError(Exception):
    """Base class for errors raised inside the plan pipeline.

    Attributes:
        message: human-readable message
        details: optional mapping with extra context for logs
        code: machine-readable error code
        http_status: suggested HTTP status code for handlers
    """

    http_status = 500
    default_code = "FITPLAN_ERROR"

    def __init__(self, message: str, details: Optional[Mapping[str, Any]] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"message": self.message, "code": self.code}
        if self.details:
            payload["details"] = dict(self.details)
        return payload

    def __str__(self) -> str:
        return self.message


class InputValidationError(FitPlanError):
    """Raised when the request body cannot be turned into a Profile.

    Only the first offending field is reported.
    """

    http_status = 400
    default_code = "INPUT_VALIDATION"

    def __init__(self, field: Optional[str], message: str):
        label = f'Field "{field}"' if field else "Field"
        super().__init__(f"{label}: {message}", details={"field": field})
        self.field = field
        self.reason = message


class GatewayTimeoutError(FitPlanError):
    """Raised when the remote inference call loses the race against its timer."""

    http_status = 504
    default_code = "GATEWAY_TIMEOUT"

    def __init__(self, timeout_s: float):
        super().__init__(
            f"Inference call timed out after {timeout_s:g}s",
            details={"timeout_s": timeout_s},
        )
        self.timeout_s = timeout_s


class TransportError(FitPlanError):
    """Raised for any non-timeout failure of the remote inference call.

    The underlying exception is chained as ``__cause__``.
    """

    http_status = 502
    default_code = "TRANSPORT_ERROR"

    def __init__(self, cause: BaseException):
        super().__init__(
            f"Inference call failed: {cause.__class__.__name__}: {cause}",
            details={"cause": repr(cause)},
        )
