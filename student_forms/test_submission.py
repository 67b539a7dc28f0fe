"""
Submission Workflow Tests

Tests for the submission workflow:
- Validation and consent gate the write
- Both documents and the daily statistics are written
- Store failures map to user messages
- A second submit while one is running is dropped
"""

import threading
import unittest
from datetime import datetime, timezone

from student_forms.document_store import DocumentStoreError, MemoryDocumentStore, increment_daily_stats
from student_forms.drafts import DraftAutosaver, MemoryDraftStore, draft_key
from student_forms.errors import ConsentFailure, SubmissionFailure, ValidationFailure, user_message_for
from student_forms.locations import LocationHierarchy
from student_forms.session import FormSession
from student_forms.submission import SubmissionService, SubmissionStatus


NOW = datetime(2024, 9, 2, 8, 30, tzinfo=timezone.utc)

PAYLOAD = {
    'counties': [{'county_id': '027', 'county_name': 'UASIN GISHU'}],
    'subcounties': [{'subcounty_id': '145', 'county_id': '027', 'constituency_name': 'KAPSERET'}],
    'station': [{'station_id': '0726', 'subcounty_id': '145', 'ward': 'LANGAS'}],
}

VALID_VALUES = {
    'fullName': 'Jane Chebet',
    'admissionNumber': 'SCI/123/24',
    'phoneNumber': '0712345678',
    'nationalId': '12345678',
    'nationality': 'Kenyan',
    'gender': 'Female',
    'dateOfBirth': '2004-05-10',
    'placeOfBirth': 'Eldoret',
    'permanentResidence': 'Langas',
    'location': 'Kapseret',
    'county': '027',
    'subCounty': '145',
    'ward': '0726',
    'emergency1Name': 'Mary Chebet',
    'emergency1Relationship': 'Mother',
    'emergency1Phone': '0722000222',
    'dataConsent': True,
    'dataRights': True,
    'mediaFullName': 'Jane Chebet',
    'mediaIdNumber': '12345678',
    'mediaDate': '2024-09-02',
    'mediaSignatureName': 'Jane Chebet',
}


class FailingStore(MemoryDocumentStore):
    """Rejects writes to chosen collections, or the statistics update."""

    def __init__(self, fail_collection=None, fail_stats=False, code='unavailable'):
        super().__init__()
        self.fail_collection = fail_collection
        self.fail_stats = fail_stats
        self.code = code

    def add(self, collection, data):
        if collection == self.fail_collection:
            raise DocumentStoreError(self.code, 'write rejected')
        return super().add(collection, data)

    def increment_stats(self, date_key, breakdown, now):
        if self.fail_stats:
            raise DocumentStoreError('permission-denied', 'stats rejected')
        return super().increment_stats(date_key, breakdown, now)


class BlockingStore(MemoryDocumentStore):
    """Holds the first write until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def add(self, collection, data):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().add(collection, data)


def make_session(values=None, draft_store=None):
    hierarchy = LocationHierarchy('test://locations', fetcher=lambda source, timeout: PAYLOAD)
    autosaver = DraftAutosaver(draft_store or MemoryDraftStore(), draft_key('uoe_dual_form_data', 's1'),
                               clock=lambda: 0.0)
    session = FormSession('s1', hierarchy, autosaver)
    session.update_values(values if values is not None else VALID_VALUES)
    return session


class TestSubmissionService(unittest.TestCase):
    """Test the submission workflow against an in-memory store."""

    def setUp(self):
        self.store = MemoryDocumentStore()
        self.service = SubmissionService(self.store, clock=lambda: NOW)

    def test_successful_submission_writes_both_documents(self):
        session = make_session()
        outcome = self.service.submit(session, user_agent='pytest')

        self.assertEqual(outcome.status, SubmissionStatus.SUBMITTED)
        self.assertTrue(outcome.submitted)
        self.assertTrue(outcome.stats_updated)

        student = self.store.get('student_submissions', outcome.student_document_id)
        media = self.store.get('media_submissions', outcome.media_document_id)
        self.assertEqual(student['personalInfo']['fullName'], 'JANE CHEBET')
        self.assertEqual(student['locationInfo']['ward'], 'Langas')
        self.assertEqual(media['signatureName'], 'Jane Chebet')

    def test_statistics_are_incremented(self):
        self.service.submit(make_session())
        stats = self.store.get_stats('2024-09-02')
        self.assertEqual(stats['dailyCount'], 1)
        self.assertEqual(stats['byCounty'], {'Uasin Gishu': 1})
        self.assertEqual(stats['byGender'], {'Female': 1})
        self.assertEqual(stats['byAgeGroup'], {'20-22': 1})

    def test_draft_removed_after_submit(self):
        draft_store = MemoryDraftStore()
        session = make_session(draft_store=draft_store)
        self.assertIn('uoe_dual_form_data:s1', draft_store.items)

        self.service.submit(session)
        self.assertEqual(draft_store.items, {})
        self.assertIsNone(session.restore_draft())
        self.assertIsNotNone(session.last_submission)

    def test_missing_fields_raise_validation_failure(self):
        session = make_session({})
        with self.assertRaises(ValidationFailure) as ctx:
            self.service.submit(session)
        self.assertEqual(len([m for m in ctx.exception.result.missing if m == 'County']), 1)
        self.assertEqual(self.store.list('student_submissions'), [])
        self.assertFalse(session.is_submitting)

    def test_missing_consent_raises_consent_failure(self):
        values = dict(VALID_VALUES, dataRights=False)
        with self.assertRaises(ConsentFailure) as ctx:
            self.service.submit(make_session(values))
        self.assertEqual(ctx.exception.missing, ['Rights acknowledgment'])
        self.assertEqual(self.store.list('student_submissions'), [])

    def test_field_states_evaluated_before_submit(self):
        values = dict(VALID_VALUES, phoneNumber='0812345678')
        session = make_session(values)
        with self.assertRaises(ValidationFailure):
            self.service.submit(session)
        self.assertEqual([f.value for f in session.field_states.invalid_fields()], ['phoneNumber'])

    def test_store_failure_maps_to_user_message(self):
        service = SubmissionService(FailingStore(fail_collection='student_submissions'), clock=lambda: NOW)
        with self.assertRaises(SubmissionFailure) as ctx:
            service.submit(make_session())
        self.assertEqual(ctx.exception.code, 'unavailable')
        self.assertEqual(ctx.exception.user_message,
                         'Service temporarily unavailable. Please try again in a few minutes.')

    def test_draft_kept_when_submission_fails(self):
        draft_store = MemoryDraftStore()
        service = SubmissionService(FailingStore(fail_collection='media_submissions'), clock=lambda: NOW)
        with self.assertRaises(SubmissionFailure):
            service.submit(make_session(draft_store=draft_store))
        self.assertIn('uoe_dual_form_data:s1', draft_store.items)

    def test_stats_failure_does_not_fail_submission(self):
        store = FailingStore(fail_stats=True)
        service = SubmissionService(store, clock=lambda: NOW)
        outcome = service.submit(make_session())
        self.assertTrue(outcome.submitted)
        self.assertFalse(outcome.stats_updated)
        self.assertEqual(len(store.list('student_submissions')), 1)

    def test_submit_while_locked_is_dropped(self):
        session = make_session()
        session.try_begin_submit()
        try:
            outcome = self.service.submit(session)
        finally:
            session.end_submit()
        self.assertEqual(outcome.status, SubmissionStatus.DROPPED)
        self.assertEqual(self.store.list('student_submissions'), [])

    def test_concurrent_submit_is_dropped(self):
        store = BlockingStore()
        service = SubmissionService(store, clock=lambda: NOW)
        session = make_session()
        outcomes = []

        worker = threading.Thread(target=lambda: outcomes.append(service.submit(session)))
        worker.start()
        self.assertTrue(store.entered.wait(timeout=5))

        second = service.submit(session)
        store.release.set()
        worker.join(timeout=5)

        self.assertEqual(second.status, SubmissionStatus.DROPPED)
        self.assertEqual(outcomes[0].status, SubmissionStatus.SUBMITTED)
        self.assertEqual(len(store.list('student_submissions')), 1)

    def test_student_form_only(self):
        values = {k: v for k, v in VALID_VALUES.items() if not k.startswith('media')}
        outcome = self.service.submit(make_session(values), include_media_release=False)
        self.assertTrue(outcome.submitted)
        self.assertIsNone(outcome.media_document_id)


class TestErrorMessages(unittest.TestCase):
    """Test document store failure code remapping."""

    def test_known_codes(self):
        self.assertEqual(user_message_for('permission-denied'),
                         'Permission denied. Please check your connection and try again.')
        self.assertEqual(user_message_for('deadline-exceeded'),
                         'Request timed out. Please check your connection and try again.')

    def test_unknown_code(self):
        self.assertEqual(user_message_for('internal'), 'Submission failed. Please try again.')
        self.assertEqual(SubmissionFailure().code, 'unknown')


class TestDailyStats(unittest.TestCase):
    def test_missing_keys_count_as_unknown(self):
        store = MemoryDocumentStore()
        increment_daily_stats(store, {'county': None, 'gender': 'Male'}, NOW)
        stats = increment_daily_stats(store, {'county': 'Nakuru', 'gender': 'Male'}, NOW)
        self.assertEqual(stats['dailyCount'], 2)
        self.assertEqual(stats['byCounty'], {'Unknown': 1, 'Nakuru': 1})
        self.assertEqual(stats['byGender'], {'Male': 2})
        self.assertEqual(stats['byAgeGroup'], {'Unknown': 2})
