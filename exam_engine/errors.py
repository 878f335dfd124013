"""Typed errors raised by the attempt, scoring and result services.

Each error carries the HTTP status the API layer should answer with, so the
routers stay free of try/except blocks.
"""


class ExamEngineError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(ExamEngineError):
    status_code = 404


class BadRequest(ExamEngineError):
    status_code = 400


class InvalidTransition(ExamEngineError):
    status_code = 409


class AttemptTerminal(InvalidTransition):
    """The attempt is submitted, timed out or disqualified."""


class DuplicateAttempt(ExamEngineError):
    status_code = 409


class AlreadySubmitted(ExamEngineError):
    status_code = 409


class ScoringProviderError(ExamEngineError):
    """The embedding provider failed. Always recovered by the keyword fallback."""

    status_code = 502
