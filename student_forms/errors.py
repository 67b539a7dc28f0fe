"""Failure types for the registration flow."""

from typing import List, Optional


class FormError(Exception):
    """Base class for registration flow failures."""

    error_code = 'FORM_ERROR'


class LoadFailure(FormError):
    """Location dataset unreachable or malformed. Handled by degrading to fallback data."""

    error_code = 'LOAD_FAILURE'


class ValidationFailure(FormError):
    """Required or malformed fields block the submission."""

    error_code = 'VALIDATION_FAILURE'

    def __init__(self, result, message: str = 'Please fill in all required fields'):
        super().__init__(message)
        self.result = result


class ConsentFailure(FormError):
    """One or both data protection checkboxes are unchecked."""

    error_code = 'CONSENT_FAILURE'

    def __init__(self, missing: List[str]):
        super().__init__(
            'You must read and accept both data protection statements before submitting: '
            + ', '.join(missing)
        )
        self.missing = list(missing)


# Known document store failure codes and what the user is told about them
SUBMISSION_ERROR_MESSAGES = {
    'permission-denied': 'Permission denied. Please check your connection and try again.',
    'unavailable': 'Service temporarily unavailable. Please try again in a few minutes.',
    'unauthenticated': 'Authentication error. Please refresh the page and try again.',
    'resource-exhausted': 'Server is busy. Please try again in a few minutes.',
    'deadline-exceeded': 'Request timed out. Please check your connection and try again.',
}
GENERIC_SUBMISSION_MESSAGE = 'Submission failed. Please try again.'


def user_message_for(code: Optional[str]) -> str:
    """Remap a document store failure code to the message shown to the user."""
    return SUBMISSION_ERROR_MESSAGES.get(code or '', GENERIC_SUBMISSION_MESSAGE)


class SubmissionFailure(FormError):
    """The document store rejected the write or could not be reached."""

    error_code = 'SUBMISSION_FAILURE'

    def __init__(self, code: Optional[str] = None, detail: str = ''):
        self.code = code or 'unknown'
        self.user_message = user_message_for(code)
        super().__init__(detail or self.user_message)


class StatsUpdateFailure(FormError):
    """The daily statistics side write failed. Logged only."""

    error_code = 'STATS_UPDATE_FAILURE'


class PersistenceFailure(FormError):
    """Saving, loading or clearing a draft failed. Logged only."""

    error_code = 'PERSISTENCE_FAILURE'
