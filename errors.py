"""Failures that the generate endpoint turns into JSON error responses."""

from typing import List, Optional


class ExamGenerationError(Exception):
    """Base class. Carries the user-facing message and the HTTP status."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class RateLimitExceeded(ExamGenerationError):
    status_code = 429


class MalformedRequest(ExamGenerationError):
    status_code = 400


class InvalidConfig(ExamGenerationError):
    status_code = 400

    def __init__(self, errors: List[str]):
        super().__init__(". ".join(errors))
        self.errors = list(errors)


class UpstreamAuthFailure(ExamGenerationError):
    pass


class UpstreamRequestRejected(ExamGenerationError):
    pass


class UpstreamOther(ExamGenerationError):
    pass


class UnparseableResponse(ExamGenerationError):
    pass


class UpstreamSchemaMismatch(ExamGenerationError):
    pass
