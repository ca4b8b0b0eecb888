"""
Exception hierarchy for the question bank.

QuestionBankError
├── NotFoundError          topic or question id did not resolve
├── ValidationError        missing, blank or malformed field
├── DuplicateError         name / question text collision
└── DatastoreError         transient storage failure (retried)
    ├── DatastoreTimeout
    └── DatastoreUnavailable
"""

from __future__ import annotations


class QuestionBankError(Exception):
    """Base class for all errors raised by the question bank."""


class NotFoundError(QuestionBankError):
    pass


class ValidationError(QuestionBankError):
    pass


class DuplicateError(QuestionBankError):
    pass


class DatastoreError(QuestionBankError):
    """A datastore call failed for a reason that may go away on retry."""


class DatastoreTimeout(DatastoreError):
    pass


class DatastoreUnavailable(DatastoreError):
    pass
