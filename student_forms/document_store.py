"""
Document store used for submissions.

The submission workflow only depends on the DocumentStore contract: add a
document to a named collection and bump the date-keyed statistics counters.
SqlDocumentStore backs it with Flask-SQLAlchemy; MemoryDocumentStore keeps
everything in process and is used by tests and local development.
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


logger = logging.getLogger(__name__)


STATS_BREAKDOWNS = ('byCounty', 'byGender', 'byAgeGroup')


class DocumentStoreError(Exception):
    """A store operation failed; code is one of the known failure categories or 'unknown'."""

    def __init__(self, code: str, message: str = ''):
        super().__init__(message or code)
        self.code = code


class DocumentStore:
    """Contract consumed by the submission workflow."""

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Write a new document and return its id."""
        raise NotImplementedError

    def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def list(self, collection: str) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def increment_stats(self, date_key: str, breakdown: Dict[str, str], now: datetime) -> Dict[str, Any]:
        """
        Increment the statistics document for a day, creating it if needed.

        Args:
            date_key: Day in YYYY-MM-DD form
            breakdown: Maps byCounty/byGender/byAgeGroup to the key to bump
            now: Update time

        Returns:
            The statistics document after the update
        """
        raise NotImplementedError

    def get_stats(self, date_key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError


def _new_document_id() -> str:
    return uuid.uuid4().hex


def _bump(counters: Dict[str, int], key: str):
    counters[key] = counters.get(key, 0) + 1


class MemoryDocumentStore(DocumentStore):
    """In-process store."""

    def __init__(self):
        self._lock = threading.Lock()
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.stats: Dict[str, Dict[str, Any]] = {}

    def add(self, collection, data):
        document_id = _new_document_id()
        with self._lock:
            # Stored as a JSON round trip so callers cannot mutate it afterwards
            self.collections.setdefault(collection, {})[document_id] = json.loads(json.dumps(data))
        return document_id

    def get(self, collection, document_id):
        return self.collections.get(collection, {}).get(document_id)

    def list(self, collection):
        return list(self.collections.get(collection, {}).values())

    def increment_stats(self, date_key, breakdown, now):
        timestamp = now.isoformat()
        with self._lock:
            stats = self.stats.get(date_key)
            if stats is None:
                stats = {
                    'dailyCount': 0,
                    'byCounty': {},
                    'byGender': {},
                    'byAgeGroup': {},
                    'created': timestamp,
                    'lastUpdated': timestamp,
                }
                self.stats[date_key] = stats
            stats['dailyCount'] += 1
            for name in STATS_BREAKDOWNS:
                _bump(stats[name], breakdown.get(name) or 'Unknown')
            stats['lastUpdated'] = timestamp
            return json.loads(json.dumps(stats))

    def get_stats(self, date_key):
        return self.stats.get(date_key)


def _error_code(error: SQLAlchemyError) -> str:
    if isinstance(error, PoolTimeoutError):
        return 'deadline-exceeded'
    if isinstance(error, OperationalError):
        return 'unavailable'
    return 'unknown'


class SqlDocumentStore(DocumentStore):
    """Flask-SQLAlchemy backed store. Must be used inside an application context."""

    def __init__(self, db):
        self.db = db

    def _fail(self, error: SQLAlchemyError, operation: str):
        self.db.session.rollback()
        code = _error_code(error)
        logger.error('Document store %s failed (%s): %s', operation, code, error)
        raise DocumentStoreError(code, str(error)) from error

    def add(self, collection, data):
        from student_forms.models import SubmissionDocument

        document = SubmissionDocument(id=_new_document_id(), collection=collection)
        document.set_payload(data)
        try:
            self.db.session.add(document)
            self.db.session.commit()
        except SQLAlchemyError as e:
            self._fail(e, f'add to {collection}')
        return document.id

    def get(self, collection, document_id):
        from student_forms.models import SubmissionDocument

        document = SubmissionDocument.query.filter_by(id=document_id, collection=collection).first()
        return document.get_payload() if document else None

    def list(self, collection):
        from student_forms.models import SubmissionDocument

        documents = SubmissionDocument.query.filter_by(collection=collection) \
                                            .order_by(SubmissionDocument.created_at.asc()) \
                                            .all()
        return [document.get_payload() for document in documents]

    def increment_stats(self, date_key, breakdown, now):
        from student_forms.models import SubmissionStats

        try:
            stats = self.db.session.get(SubmissionStats, date_key)
            if stats is None:
                stats = SubmissionStats(
                    date_key=date_key,
                    daily_count=0,
                    by_county_json='{}',
                    by_gender_json='{}',
                    by_age_group_json='{}',
                    created=now,
                )
                self.db.session.add(stats)

            counters = {
                'byCounty': json.loads(stats.by_county_json or '{}'),
                'byGender': json.loads(stats.by_gender_json or '{}'),
                'byAgeGroup': json.loads(stats.by_age_group_json or '{}'),
            }
            for name in STATS_BREAKDOWNS:
                _bump(counters[name], breakdown.get(name) or 'Unknown')

            stats.daily_count = (stats.daily_count or 0) + 1
            stats.by_county_json = json.dumps(counters['byCounty'], sort_keys=True)
            stats.by_gender_json = json.dumps(counters['byGender'], sort_keys=True)
            stats.by_age_group_json = json.dumps(counters['byAgeGroup'], sort_keys=True)
            stats.last_updated = now
            self.db.session.commit()
        except SQLAlchemyError as e:
            self._fail(e, f'stats update for {date_key}')
        return stats.to_dict()

    def get_stats(self, date_key):
        from student_forms.models import SubmissionStats

        stats = self.db.session.get(SubmissionStats, date_key)
        return stats.to_dict() if stats else None


def increment_daily_stats(store: DocumentStore, stats_keys: Dict[str, str], now: datetime) -> Dict[str, Any]:
    """
    Record one submission in the statistics document for the day.

    Args:
        store: Document store
        stats_keys: county, gender and ageGroup of the submission
        now: Submission time; its date is the document key

    Returns:
        The updated statistics document
    """
    date_key = now.date().isoformat()
    breakdown = {
        'byCounty': stats_keys.get('county') or 'Unknown',
        'byGender': stats_keys.get('gender') or 'Unknown',
        'byAgeGroup': stats_keys.get('ageGroup') or 'Unknown',
    }
    return store.increment_stats(date_key, breakdown, now)
