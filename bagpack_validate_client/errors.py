from typing import Optional


class ValidationClientError(Exception):
    """Base class for everything that ends a validation run unsuccessfully"""


class SubmissionTransportError(ValidationClientError):
    pass


class MalformedLocator(ValidationClientError):
    def __init__(self, message: str, locator: Optional[str] = None):
        super().__init__(message)
        self.locator = locator


class PollTransportError(ValidationClientError):
    pass


class JobFailed(ValidationClientError):
    def __init__(self, description: str):
        super().__init__(f"Validation failed: {description}")
        self.description = description


class UnrecognizedStatus(ValidationClientError):
    def __init__(self, raw_status: str):
        super().__init__(f"Unknown status: {raw_status}")
        self.raw_status = raw_status
