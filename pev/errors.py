"""Error taxonomy for job submission, polling and stitching."""

from __future__ import annotations


class VideoGenerationError(Exception):
    """Base class for all generation pipeline errors."""


class UnknownModelError(VideoGenerationError):
    """Model identifier is not registered. Never retried."""

    def __init__(self, model: str, supported: list[str] | None = None):
        self.model = model
        self.supported = supported or []
        msg = f"Unknown model: {model}"
        if self.supported:
            msg += f". Supported: {', '.join(self.supported)}"
        super().__init__(msg)


class InvalidRequestError(VideoGenerationError):
    """Generation request cannot be normalized (empty prompt, duration < 1s...)."""


class MissingCredentialError(VideoGenerationError):
    """Model needs a secondary provider credential that is not configured."""


class SubmissionError(VideoGenerationError):
    """Job creation failed with a non-retryable response."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class RateLimitExceededError(SubmissionError):
    """Job creation kept returning 429 until the attempt cap was reached."""

    def __init__(self, attempts: int, body: str = ""):
        self.attempts = attempts
        super().__init__(
            f"Rate limited after {attempts} attempts: {body[:300]}",
            status_code=429,
            body=body,
        )


class PollTransientError(VideoGenerationError):
    """A single status check failed; the job keeps its last known status."""


class TranscoderError(VideoGenerationError):
    """The transcoder could not be loaded or an invocation failed."""


class StitchError(VideoGenerationError):
    """Every stitching strategy failed. Individual parts remain usable."""

    def __init__(self, message: str, failures: dict[str, str] | None = None):
        self.failures = failures or {}
        super().__init__(message)
