from typing import Optional


class JobApplicationError(Exception):
    """Base error. Carries the HTTP status and the user-facing message."""

    status_code = 500
    message = "Internal server error"

    def __init__(self, error: Optional[str] = None, message: Optional[str] = None):
        if message is not None:
            self.message = message
        self.error = error
        super().__init__(error or self.message)


class ValidationError(JobApplicationError):
    status_code = 400
    message = "Resume content and job description are required"


class NotFoundError(JobApplicationError):
    status_code = 404
    message = "Job application not found"


class GenerationError(JobApplicationError):
    status_code = 500
    message = "Failed to generate content"


class StoreError(JobApplicationError):
    status_code = 500
    message = "Internal server error"


class ConfigurationError(JobApplicationError):
    """Raised at startup when required settings are missing."""

    message = "Service is not configured"
