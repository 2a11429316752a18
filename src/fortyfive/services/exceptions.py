"""Service error hierarchy for the generation pipeline and credit billing.

This module defines the exception hierarchy for service-level errors:
- ServiceError: Base for all service errors
- Request errors surfaced to synchronous callers (validation, safety, credits)
- Generation errors recorded on the Generation row by workers
- Queue and storage errors surfaced on submission
"""


class ServiceError(Exception):
    """Base exception for all service errors."""

    pass


# Request errors
class ValidationError(ServiceError):
    """Bad input, e.g. missing or oversized image."""

    pass


class SafetyError(ServiceError):
    """Image content rejected (or not checkable) by the content-safety service."""

    pass


class InsufficientCreditsError(ServiceError):
    """User balance is below the template's credit cost."""

    def __init__(self, user_id: int, balance: int, required: int):
        self.user_id = user_id
        self.balance = balance
        self.required = required
        super().__init__(f"insufficient credits: balance {balance}, required {required}")


# Lookup errors
class NotFoundError(ServiceError):
    """Base exception for unknown identifiers."""

    pass


class TemplateNotFound(NotFoundError):
    """Template id does not exist (or is not active)."""

    def __init__(self, template_id: int):
        self.template_id = template_id
        super().__init__(f"template {template_id} not found")


class UserNotFound(NotFoundError):
    """User id does not exist."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"user {user_id} not found")


class JobNotFound(NotFoundError):
    """No Generation row exists for the job id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"job {job_id} not found")


class NotCompletedError(ServiceError):
    """Result requested before the job reached the completed state."""

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"job {job_id} is {status}, result not available")


# Generation errors
class GenerationFailed(ServiceError):
    """Image generation provider failed."""

    pass


class NoImagesProduced(GenerationFailed):
    """Provider returned an empty result list."""

    def __init__(self, message: str = "No images generated"):
        super().__init__(message)


class TransientGenerationError(GenerationFailed):
    """Provider failure that may succeed if the user resubmits.

    Examples:
    - Network timeouts
    - Rate limit exceeded (429)
    - Service unavailable (503)
    """

    pass


class ContentPolicyError(GenerationFailed):
    """Provider refused the request on content-policy grounds."""

    pass


class PermanentGenerationError(GenerationFailed):
    """Provider failure that will not succeed on resubmission.

    Examples:
    - Authentication failures (401, 403)
    - Unexpected output format
    - Missing configuration
    """

    pass


# Queue and storage errors
class QueueFullError(ServiceError):
    """Job queue is at capacity; the submission was rejected immediately."""

    def __init__(self, capacity: int):
        self.capacity = capacity
        super().__init__(f"queue is full (capacity {capacity})")


class ShutdownTimeout(ServiceError):
    """Workers did not acknowledge shutdown within the timeout."""

    def __init__(self, timeout: float, still_running: int):
        self.timeout = timeout
        self.still_running = still_running
        super().__init__(
            f"shutdown timed out after {timeout}s with {still_running} worker(s) still running"
        )


class StorageError(ServiceError):
    """Persistence failure (constraint violation, lost connection)."""

    pass
