"""Exceptions raised by the exam session core."""

from __future__ import annotations


class ExamSessionError(Exception):
    """Base class for all exam session errors."""


class SessionAlreadyStarted(ExamSessionError):
    """An in-progress submission already exists for the student and test.

    Not a failure: the controller catches it and resumes the attempt.
    """

    def __init__(self, record: dict) -> None:
        super().__init__("An attempt is already in progress for this test.")
        self.record = record


class SessionAlreadySubmitted(ExamSessionError):
    """The attempt has left ``in_progress`` and can no longer be changed."""


class SessionNotStarted(ExamSessionError):
    """No open attempt exists for the requested student and test."""


class SessionTimeExpired(ExamSessionError):
    """The attempt's time allowance ran out before the request was handled."""


class PersistenceFailure(ExamSessionError):
    """A record store call failed."""


class TestUnavailable(ExamSessionError):
    """The test does not exist or is not accepting new attempts."""

    __test__ = False


class InvalidManualScore(ExamSessionError, ValueError):
    """A manual score lies outside ``[0, question.marks]``."""


class InvalidTestDefinition(ExamSessionError, ValueError):
    """A test or question record violates the test invariants."""
