"""
Submission workflow.

validate -> consent -> aggregate -> write both documents -> daily stats ->
clear draft. Only one submission per session may be in flight; a second
attempt while one is running is dropped, not queued. Nothing is retried.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from student_forms.aggregator import SubmissionRecord, collect, collect_media_release
from student_forms.config import FormConfig
from student_forms.document_store import DocumentStore, DocumentStoreError, increment_daily_stats
from student_forms.errors import ConsentFailure, StatsUpdateFailure, SubmissionFailure, ValidationFailure
from student_forms.fields import FormName, fields_for_form
from student_forms.session import FormSession
from student_forms.validation import validate_consent, validate_form


logger = logging.getLogger(__name__)


class SubmissionStatus:
    SUBMITTED = 'submitted'
    DROPPED = 'dropped'


@dataclass
class SubmissionOutcome:
    status: str
    student_document_id: Optional[str] = None
    media_document_id: Optional[str] = None
    record: Optional[SubmissionRecord] = None
    stats_updated: bool = False

    @property
    def submitted(self) -> bool:
        return self.status == SubmissionStatus.SUBMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.submitted,
            'status': self.status,
            'studentDocumentId': self.student_document_id,
            'mediaDocumentId': self.media_document_id,
            'statsUpdated': self.stats_updated,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubmissionService:
    """Submits a session's forms to the document store."""

    def __init__(self, store: DocumentStore, config: Optional[FormConfig] = None,
                 clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.config = config or FormConfig()
        self.clock = clock

    def submit(self, session: FormSession, user_agent: Optional[str] = None,
               include_media_release: bool = True) -> SubmissionOutcome:
        """
        Validate and submit the session's forms.

        Args:
            session: The client's form session
            user_agent: Recorded in the submission metadata
            include_media_release: Also validate and submit the media release form

        Returns:
            SubmissionOutcome; status is 'dropped' when another submission
            for the session is still running

        Raises:
            ValidationFailure: required or malformed fields
            ConsentFailure: a data protection checkbox is unchecked
            SubmissionFailure: the document store rejected a write
        """
        if not session.try_begin_submit():
            logger.info('Dropping submit for session %s: submission already in progress', session.session_id)
            return SubmissionOutcome(status=SubmissionStatus.DROPPED)

        try:
            return self._submit(session, user_agent, include_media_release)
        finally:
            session.end_submit()

    def _submit(self, session: FormSession, user_agent: Optional[str],
                include_media_release: bool) -> SubmissionOutcome:
        now = self.clock()
        values = session.values
        is_fallback = session.hierarchy.is_fallback

        checked_fields = fields_for_form(FormName.STUDENT)
        if include_media_release:
            checked_fields += fields_for_form(FormName.MEDIA_RELEASE)
        session.field_states.evaluate_all(values, checked_fields, now.date())

        result = validate_form(values, session.selection, now.date(), self.config,
                               include_media_release=include_media_release)
        if not result.is_valid:
            raise ValidationFailure(result)

        consent = validate_consent(values)
        if not consent.valid:
            raise ConsentFailure(list(consent.missing))

        record = collect(values, session.selection, self.config, is_fallback, now, user_agent)
        media_record = collect_media_release(values, now) if include_media_release else None

        try:
            student_id = self.store.add(self.config.student_collection, record.to_dict())
            logger.info('Student document written with id %s', student_id)
            media_id = None
            if media_record is not None:
                media_id = self.store.add(self.config.media_collection, media_record.to_dict())
                logger.info('Media release document written with id %s', media_id)
        except DocumentStoreError as e:
            raise SubmissionFailure(e.code, str(e)) from e

        stats_updated = self._update_stats(record, now)

        session.autosaver.clear()
        session.last_submission = {
            'studentDocumentId': student_id,
            'mediaDocumentId': media_id,
            'submittedAt': record.metadata.submission_date,
        }

        return SubmissionOutcome(
            status=SubmissionStatus.SUBMITTED,
            student_document_id=student_id,
            media_document_id=media_id,
            record=record,
            stats_updated=stats_updated,
        )

    def _update_stats(self, record: SubmissionRecord, now: datetime) -> bool:
        """Best effort: a failed statistics write never fails the submission."""
        try:
            increment_daily_stats(self.store, record.stats_keys(), now)
        except DocumentStoreError as e:
            failure = StatsUpdateFailure(f'Error updating stats: {e}')
            logger.warning('%s (%s)', failure, e.code)
            return False
        return True
