"""
Error taxonomy for the upload service.

Every error carries the HTTP status it maps to; ``main.py`` registers a single
handler that renders them as ``{"error": message}``.
"""


class UploadServiceError(Exception):
    """Base exception for errors surfaced to API clients."""

    def __init__(self, message: str, error_type: str = "unknown", http_status: int = 500):
        """
        Initialize UploadServiceError.

        Args:
            message: Human-readable error message (returned to the client)
            error_type: Machine-readable error classification
            http_status: HTTP status code for the response
        """
        self.message = message
        self.error_type = error_type
        self.http_status = http_status
        super().__init__(message)


class AuthError(UploadServiceError):
    """Missing, malformed or unknown bearer token."""

    def __init__(self, message: str = "Invalid access token"):
        super().__init__(message, error_type="unauthorized", http_status=401)


class AccessDeniedError(UploadServiceError):
    """Authenticated, but the caller's role is not allowed on this route."""

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, error_type="forbidden", http_status=403)


class QuotaExceededError(UploadServiceError):
    """Monthly render quota exhausted for the caller's plan."""

    def __init__(self, message: str):
        super().__init__(message, error_type="quota_exceeded", http_status=429)


class PayloadTooLargeError(UploadServiceError):
    """Upload exceeds the caller's effective size limit."""

    def __init__(self, message: str):
        super().__init__(message, error_type="payload_too_large", http_status=413)


class UploadValidationError(UploadServiceError):
    """Malformed upload request (missing file, unexpected field)."""

    def __init__(self, message: str, error_type: str = "invalid_upload"):
        super().__init__(message, error_type=error_type, http_status=400)


class UnsupportedMediaTypeError(UploadValidationError):
    """Declared content type is not a supported audio format."""

    def __init__(self, message: str = "Unsupported audio format"):
        super().__init__(message, error_type="unsupported_media_type")


class NotFoundError(UploadServiceError):
    def __init__(self, message: str = "File not found"):
        super().__init__(message, error_type="not_found", http_status=404)


class SignatureInvalidError(UploadServiceError):
    """Download token is expired, malformed or does not match."""

    def __init__(self, message: str = "Invalid or expired download token"):
        super().__init__(message, error_type="signature_invalid", http_status=403)


class UpstreamProviderError(UploadServiceError):
    """A provider write the request depends on failed."""

    def __init__(self, message: str, http_status: int = 500):
        super().__init__(message, error_type="upstream_error", http_status=http_status)
