"""
Centralized exception definitions for the backend application.

Every error carries a machine-readable ``code`` that is returned to clients
as the ``error`` field of the JSON body.
"""

class AppError(Exception):
    """Base class for application errors."""
    def __init__(self, message: str, status_code: int = 500, code: str = "server_error", detail: str = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.detail = detail or message
        self.headers = None

class NotFoundError(AppError):
    """Raised when a resource is not found."""
    def __init__(self, message: str = "Video not found"):
        super().__init__(message, status_code=404, code="not_found")

class ValidationError(AppError):
    """Raised when client input is missing or malformed."""
    def __init__(self, code: str, message: str = "Invalid input"):
        super().__init__(message, status_code=400, code=code)

class FileTooLargeError(AppError):
    """Raised when an upload exceeds the configured size limit."""
    def __init__(self, max_mb: int):
        super().__init__(
            f"Upload failed: File exceeds maximum allowed size ({max_mb}MB).",
            status_code=413,
            code="file_too_large",
        )

class ForbiddenError(AppError):
    """Raised when a requested path escapes the storage root."""
    def __init__(self, message: str = "Access denied"):
        super().__init__(message, status_code=403, code="forbidden")

class RangeNotSatisfiableError(AppError):
    """Raised when a byte range cannot be served."""
    def __init__(self, size: int):
        super().__init__("Requested range not satisfiable", status_code=416, code="range_not_satisfiable")
        self.headers = {"Content-Range": f"bytes */{size}"}

class ProcessingError(AppError):
    """Raised when the media tool fails or produces no output."""
    def __init__(self, message: str = "Video processing failed", detail: str = None):
        super().__init__(message, status_code=500, code="processing_failed", detail=detail)
