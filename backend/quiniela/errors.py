"""
backend/quiniela/errors.py

Purpose:
    Exception taxonomy for the round pipeline and the submission path.

    ConfigurationError      fatal, the process exits non-zero, no retry
    ProviderError           run aborted, retried on the next scheduled tick
    StoreError              run aborted, prior state preserved
    NormalizationError      single record skipped, run continues
    SubmissionError         rejection surfaced to the submitting caller
    ScoringError            scoring precondition violated
"""


class QuinielaError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(QuinielaError):
    pass


class ProviderError(QuinielaError):
    pass


class StoreError(QuinielaError):
    pass


class NormalizationError(QuinielaError):
    pass


class SubmissionError(QuinielaError):
    pass


class DuplicateSubmissionError(SubmissionError):
    def __init__(self, username: str, round_number: int):
        super().__init__(f"{username} already submitted predictions for round {round_number}")
        self.username = username
        self.round = round_number


class InvalidSubmissionError(SubmissionError):
    pass


class RoundLockedError(SubmissionError):
    pass


class ScoringError(QuinielaError):
    pass


class RoundNotCompleteError(ScoringError):
    pass


class AlreadyScoredError(ScoringError):
    pass
