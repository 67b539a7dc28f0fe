"""
Per-client form state.

A FormSession holds everything one client's form flow needs: the current
field values, the location cascade, field validation states, the draft
autosaver and the submit lock. The SessionRegistry maps the id stored in the
client's cookie to its FormSession.
"""

import logging
import threading
import time
from datetime import date
from typing import Any, Callable, Dict, Mapping, Optional

from student_forms.config import FormConfig
from student_forms.drafts import DraftAutosaver, Snapshot
from student_forms.fields import FieldId, FieldValues, parse_field_id
from student_forms.locations import CascadeController, LocationHierarchy, LocationSelection
from student_forms.validation import FieldState, FieldStateTracker


logger = logging.getLogger(__name__)

LOCATION_FIELD_LEVELS = {
    FieldId.COUNTY: 'county',
    FieldId.SUB_COUNTY: 'sub_county',
    FieldId.CONSTITUENCY: 'constituency',
    FieldId.WARD: 'ward',
}


class FormSession:
    """State for one client's registration."""

    def __init__(self, session_id: str, hierarchy: LocationHierarchy,
                 autosaver: DraftAutosaver, config: Optional[FormConfig] = None):
        self.session_id = session_id
        self.hierarchy = hierarchy
        self.autosaver = autosaver
        self.config = config or FormConfig()
        self.values = FieldValues()
        self.cascade = CascadeController(hierarchy)
        self.field_states = FieldStateTracker(self.config)
        self.last_submission: Optional[Dict[str, Any]] = None
        self._submit_lock = threading.Lock()

    def __repr__(self):
        return f'<FormSession {self.session_id}>'

    @property
    def selection(self) -> LocationSelection:
        return self.cascade.selection

    # ========================================
    # SUBMIT GUARD
    # ========================================

    @property
    def is_submitting(self) -> bool:
        return self._submit_lock.locked()

    def try_begin_submit(self) -> bool:
        """Take the submit lock without waiting. False means a submit is already running."""
        return self._submit_lock.acquire(blocking=False)

    def end_submit(self):
        self._submit_lock.release()

    # ========================================
    # FIELD VALUES
    # ========================================

    def _sync_location_values(self):
        selection = self.cascade.selection
        self.values = self.values.with_values({
            FieldId.COUNTY: selection.county.id if selection.county else '',
            FieldId.SUB_COUNTY: selection.sub_county.id if selection.sub_county else '',
            FieldId.CONSTITUENCY: selection.constituency.id if selection.constituency else '',
            FieldId.WARD: selection.ward.id if selection.ward else '',
        })

    def update_values(self, updates: Mapping[str, Any]) -> FieldValues:
        """
        Merge posted field values and schedule a draft save.

        Location ids go through the cascade so the selection stays
        consistent; any other unknown key is ignored.
        """
        plain = {}
        location_updates = {}
        for key, value in updates.items():
            field_id = key if isinstance(key, FieldId) else parse_field_id(str(key))
            if field_id is None:
                continue
            if field_id in LOCATION_FIELD_LEVELS:
                location_updates[field_id] = value
            else:
                plain[field_id] = value

        self.values = self.values.with_values(plain)
        if location_updates:
            self._apply_location_ids(location_updates)

        self.autosaver.changed(self.snapshot())
        return self.values

    def _apply_location_ids(self, location_updates: Dict[FieldId, Any]):
        selection = self.cascade.selection

        def current(level):
            return level.id if level else ''

        county_id = str(location_updates.get(FieldId.COUNTY, current(selection.county)) or '')
        sub_county_id = str(location_updates.get(FieldId.SUB_COUNTY, current(selection.sub_county)) or '')
        ward_id = str(location_updates.get(FieldId.WARD, current(selection.ward)) or '')

        unchanged = (county_id == current(selection.county)
                     and sub_county_id == current(selection.sub_county)
                     and ward_id == current(selection.ward))
        if not unchanged:
            self.cascade.restore(county_id, sub_county_id, ward_id)
        self._sync_location_values()

    def select_location(self, level: str, location_id: Optional[str]) -> LocationSelection:
        """Apply one dropdown choice and save the resulting draft."""
        selection = self.cascade.choose(level, location_id)
        self._sync_location_values()
        self.autosaver.changed(self.snapshot())
        return selection

    def field_event(self, field_id: FieldId, value: Any = None, today: Optional[date] = None) -> FieldState:
        """Input or change on one field: store the value, then re-evaluate it."""
        if value is not None:
            self.update_values({field_id: value})
        return self.field_states.evaluate(field_id, self.values, today)

    def snapshot(self) -> Snapshot:
        return self.values.to_snapshot()

    # ========================================
    # DRAFT LIFECYCLE
    # ========================================

    def restore_draft(self) -> Optional[Snapshot]:
        """Load the saved draft into this session, if there is one."""
        snapshot = self.autosaver.restore()
        if snapshot is None:
            return None

        self.values = FieldValues(snapshot)
        self.cascade.restore(
            self.values.text(FieldId.COUNTY),
            self.values.text(FieldId.SUB_COUNTY),
            self.values.text(FieldId.WARD),
        )
        self._sync_location_values()
        logger.info('Restored draft for session %s', self.session_id)
        return self.snapshot()

    def flush_draft(self, updates: Optional[Mapping[str, Any]] = None) -> bool:
        """Unconditional save, used when the page unloads."""
        if updates:
            self.update_values(updates)
        return self.autosaver.flush(self.snapshot())

    def clear(self) -> bool:
        """Reset both forms and remove the saved draft."""
        self.values = FieldValues()
        self.cascade = CascadeController(self.hierarchy)
        self.field_states.reset()
        return self.autosaver.clear()


class SessionRegistry:
    """
    In-process map of session id to FormSession.

    A session not accessed for ttl_seconds is evicted on a later get(); its
    pending draft is written first. Sessions that stay are given the chance
    to write a pending draft whose debounce interval has passed.
    """

    def __init__(self, factory: Callable[[str], FormSession], ttl_seconds: float = 43200.0,
                 sweep_interval: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self._factory = factory
        self.ttl_seconds = ttl_seconds
        self.sweep_interval = sweep_interval
        self.clock = clock
        self._sessions: Dict[str, FormSession] = {}
        self._last_access: Dict[str, float] = {}
        self._last_sweep: Optional[float] = None
        self._lock = threading.Lock()

    def get(self, session_id: str) -> FormSession:
        with self._lock:
            now = self.clock()
            self._sweep(now)
            session = self._sessions.get(session_id)
            if session is None:
                session = self._factory(session_id)
                self._sessions[session_id] = session
            self._last_access[session_id] = now
            return session

    def discard(self, session_id: str):
        """Drop a session after writing any pending draft it holds."""
        with self._lock:
            self._evict(session_id)

    def _evict(self, session_id: str):
        session = self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)
        if session is not None:
            session.autosaver.flush()

    def _sweep(self, now: float):
        if self._last_sweep is not None and now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now

        expired = []
        for session_id, last_access in self._last_access.items():
            session = self._sessions[session_id]
            if now - last_access >= self.ttl_seconds and not session.is_submitting:
                expired.append(session_id)
            else:
                session.autosaver.flush_due()

        for session_id in expired:
            self._evict(session_id)
        if expired:
            logger.info('Evicted %d idle form sessions', len(expired))

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, session_id):
        return session_id in self._sessions
