"""
errors.py — typed failures raised by the session and generation layers.

Mapped to HTTP responses by the exception handlers in main.py:
  SessionNotFoundError        → 404 NOT_FOUND
  ValidationFailure           → 422 VALIDATION_ERROR (via the ValueError handler)
  GenerationUnavailableError  → 500 GENERATION_FAILED

PayloadParseError and MalformedEnvelopeError never leave the generation
layer; they mark a single attempt as failed so the retry policy runs again.
"""


class SessionNotFoundError(LookupError):
    """Session is absent or belongs to another owner. The two cases are indistinguishable on purpose."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class ValidationFailure(ValueError):
    """Rejected input (empty prompt, empty name) — raised before any state mutation."""


class GenerationUnavailableError(RuntimeError):
    """The generation endpoint failed on every attempt."""

    def __init__(self, attempts: int):
        super().__init__(f"Component generation failed after {attempts} attempts")
        self.attempts = attempts


class PayloadParseError(ValueError):
    """Model payload was not a JSON object."""


class MalformedEnvelopeError(RuntimeError):
    """Provider response carried no usable message content."""
