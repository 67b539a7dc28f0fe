"""
Draft persistence.

A draft is the flat field-id -> value snapshot of an unsubmitted form. It
is written (debounced) while the student types, unconditionally when the
page unloads, read once when the page loads and removed after a successful
submission or an explicit clear. Draft failures never break the form: they
are logged as PersistenceFailure and swallowed.
"""

import json
import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from student_forms.errors import PersistenceFailure


logger = logging.getLogger(__name__)

Snapshot = Dict[str, Union[str, bool]]


def draft_key(base_key: str, session_id: str) -> str:
    """Scope the reserved draft key to one client."""
    return f'{base_key}:{session_id}'


def serialize_snapshot(snapshot: Snapshot) -> str:
    return json.dumps(snapshot, ensure_ascii=False, sort_keys=True)


def deserialize_snapshot(serialized: str) -> Snapshot:
    """
    Parse a stored snapshot.

    Raises:
        PersistenceFailure: if the text is not a JSON object of strings and booleans
    """
    try:
        data = json.loads(serialized)
    except (TypeError, ValueError) as e:
        raise PersistenceFailure(f'Draft is not valid JSON: {e}') from e

    if not isinstance(data, dict):
        raise PersistenceFailure('Draft is not a JSON object')

    snapshot = {}
    for key, value in data.items():
        if isinstance(value, (str, bool)):
            snapshot[str(key)] = value
        elif value is None:
            snapshot[str(key)] = ''
        else:
            snapshot[str(key)] = str(value)
    return snapshot


class DraftStore:
    """Scoped key-value storage for draft snapshots."""

    def put(self, key: str, serialized: str):
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def remove(self, key: str):
        raise NotImplementedError


class MemoryDraftStore(DraftStore):

    def __init__(self):
        self._lock = threading.Lock()
        self.items: Dict[str, str] = {}

    def put(self, key, serialized):
        with self._lock:
            self.items[key] = serialized

    def get(self, key):
        return self.items.get(key)

    def remove(self, key):
        with self._lock:
            self.items.pop(key, None)


class SqlDraftStore(DraftStore):
    """Drafts in the DraftRecord table. Must be used inside an application context."""

    def __init__(self, db):
        self.db = db

    def put(self, key, serialized):
        from student_forms.models import DraftRecord

        try:
            record = self.db.session.get(DraftRecord, key)
            if record is None:
                record = DraftRecord(storage_key=key, snapshot_json=serialized)
                self.db.session.add(record)
            else:
                record.snapshot_json = serialized
            record.updated_at = datetime.utcnow()
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            raise PersistenceFailure(f'Could not save draft: {e}') from e

    def get(self, key):
        from student_forms.models import DraftRecord

        try:
            record = self.db.session.get(DraftRecord, key)
        except SQLAlchemyError as e:
            raise PersistenceFailure(f'Could not load draft: {e}') from e
        return record.snapshot_json if record else None

    def remove(self, key):
        from student_forms.models import DraftRecord

        try:
            DraftRecord.query.filter_by(storage_key=key).delete()
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            raise PersistenceFailure(f'Could not clear draft: {e}') from e


class DraftAutosaver:
    """
    Debounced draft writer for one client.

    changed() records the newest snapshot and writes it only if at least
    debounce_seconds have passed since the previous write; otherwise the
    snapshot stays pending until the next change, flush_due(), flush() or
    restore(). The SessionRegistry calls flush_due() on idle sessions so a
    trailing edit reaches the store without another request from its client.
    """

    def __init__(self, store: DraftStore, key: str, debounce_seconds: float = 1.0,
                 clock: Callable[[], float] = time.monotonic):
        self.store = store
        self.key = key
        self.debounce_seconds = debounce_seconds
        self.clock = clock
        self._pending: Optional[Snapshot] = None
        self._last_write: Optional[float] = None
        self._lock = threading.Lock()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def changed(self, snapshot: Snapshot) -> bool:
        """Record a new snapshot. Returns True if it was written now."""
        with self._lock:
            self._pending = dict(snapshot)
        return self.flush_due()

    def flush_due(self) -> bool:
        """Write the pending snapshot if the debounce interval has passed."""
        with self._lock:
            if self._pending is None:
                return False
            now = self.clock()
            if self._last_write is not None and now - self._last_write < self.debounce_seconds:
                return False
            return self._write(now)

    def flush(self, snapshot: Optional[Snapshot] = None) -> bool:
        """Write immediately, ignoring the debounce interval (page unload)."""
        with self._lock:
            if snapshot is not None:
                self._pending = dict(snapshot)
            if self._pending is None:
                return False
            return self._write(self.clock())

    def _write(self, now: float) -> bool:
        try:
            self.store.put(self.key, serialize_snapshot(self._pending))
        except PersistenceFailure as e:
            logger.warning('Draft save failed for %s: %s', self.key, e)
            return False
        self._pending = None
        self._last_write = now
        return True

    def restore(self) -> Optional[Snapshot]:
        """
        The newest draft, or None if there is none or it cannot be read.

        A snapshot still waiting out the debounce interval is newer than the
        stored one, so it wins.
        """
        self.flush_due()
        with self._lock:
            if self._pending is not None:
                return dict(self._pending)
        try:
            serialized = self.store.get(self.key)
            if serialized is None:
                return None
            return deserialize_snapshot(serialized)
        except PersistenceFailure as e:
            logger.warning('Draft restore failed for %s: %s', self.key, e)
            return None

    def clear(self) -> bool:
        """Drop any pending snapshot and remove the stored draft."""
        with self._lock:
            self._pending = None
            try:
                self.store.remove(self.key)
            except PersistenceFailure as e:
                logger.warning('Draft clear failed for %s: %s', self.key, e)
                return False
            return True
