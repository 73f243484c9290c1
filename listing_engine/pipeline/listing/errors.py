from __future__ import annotations
from typing import Iterable

#pipeline errors; sanitizer errors live in utils.json_sanitizer
class PipelineError(RuntimeError): ...

class EmptyResponseError(PipelineError):
    retryable = False

class MissingFieldError(PipelineError):
    retryable = False

    def __init__(self, phase: str, missing: Iterable[str]):
        self.phase = phase
        self.missing = list(missing)
        super().__init__(f"{phase}: missing required fields: {', '.join(self.missing)}")


class InvalidImageError(ValueError):
    """Caller input problem detected before any model call."""

    def __init__(self, message: str, error_code: str = "INVALID_IMAGE", status_code: int = 400):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
