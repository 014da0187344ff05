"""
Shared error types for core services.
"""


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class NotFoundError(LookupError):
    def __init__(self, resource: str, resource_id: str | None = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{message}: {resource_id}"
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class AuthenticationError(PermissionError):
    """Raised when a request carries no usable credentials."""


class UpstreamFailure(RuntimeError):
    """Raised when the store or the embedding provider fails."""


class EmbeddingProviderError(UpstreamFailure):
    """Raised when the embedding provider is unavailable."""


class StoreError(UpstreamFailure):
    """Raised when the memory store rejects or fails a query."""
