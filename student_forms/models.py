"""
Database models for the student registration application.

- Submitted documents for the student and media release collections
- Daily submission statistics
- Draft snapshots keyed by client
- Audit trail integration
"""

import json
import hashlib
from datetime import datetime
from student_forms import db


class SubmissionDocument(db.Model):
    """
    A document written to one of the submission collections.

    Documents are written once and never updated.
    """
    __tablename__ = 'submission_documents'

    id = db.Column(db.String(32), primary_key=True)
    collection = db.Column(db.String(50), nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Payload as sent by the aggregator
    payload_json = db.Column(db.Text, nullable=False)
    payload_sha256 = db.Column(db.String(64), nullable=False)

    def __repr__(self):
        return f'<SubmissionDocument {self.id} in {self.collection}>'

    def to_dict(self):
        """Convert document to dictionary for API responses."""
        return {
            'id': self.id,
            'collection': self.collection,
            'created_at': self.created_at.isoformat(),
            'payload_sha256': self.payload_sha256,
            'data': self.get_payload(),
        }

    def get_payload(self):
        """Deserialize the JSON payload."""
        return json.loads(self.payload_json)

    def set_payload(self, payload):
        """Serialize the payload to JSON with stable ordering."""
        self.payload_json = json.dumps(payload, indent=2, sort_keys=True)
        self.payload_sha256 = hashlib.sha256(self.payload_json.encode('utf-8')).hexdigest()


class SubmissionStats(db.Model):
    """
    Date-keyed aggregate counters, one row per day (YYYY-MM-DD).
    """
    __tablename__ = 'submission_stats'

    date_key = db.Column(db.String(10), primary_key=True)

    daily_count = db.Column(db.Integer, default=0, nullable=False)
    by_county_json = db.Column(db.Text, default='{}', nullable=False)
    by_gender_json = db.Column(db.Text, default='{}', nullable=False)
    by_age_group_json = db.Column(db.Text, default='{}', nullable=False)

    created = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<SubmissionStats {self.date_key}: {self.daily_count}>'

    def to_dict(self):
        return {
            'dailyCount': self.daily_count,
            'byCounty': json.loads(self.by_county_json or '{}'),
            'byGender': json.loads(self.by_gender_json or '{}'),
            'byAgeGroup': json.loads(self.by_age_group_json or '{}'),
            'created': self.created.isoformat() if self.created else None,
            'lastUpdated': self.last_updated.isoformat() if self.last_updated else None,
        }


class DraftRecord(db.Model):
    """
    Latest draft snapshot for one storage key.
    """
    __tablename__ = 'draft_records'

    storage_key = db.Column(db.String(200), primary_key=True)
    snapshot_json = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f'<DraftRecord {self.storage_key}>'


class AuditLog(db.Model):
    """
    Immutable audit trail for all significant actions.

    This table is append-only. Records are never modified or deleted.
    """
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)

    # When the action occurred
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Who performed the action
    actor_type = db.Column(db.String(20), nullable=False)  # 'user', 'system'
    actor_id = db.Column(db.String(100), nullable=True)  # IP address or None for system

    # What was done
    action = db.Column(db.String(50), nullable=False)  # 'submission_created', 'pdf_generated', etc.
    action_category = db.Column(db.String(20), nullable=False)  # 'create', 'delete', 'generate', 'system'

    # What was affected
    document_id = db.Column(db.String(32), nullable=True)
    resource_type = db.Column(db.String(50), nullable=False)  # 'submission', 'pdf', 'draft', etc.
    resource_id = db.Column(db.String(100), nullable=True)

    # Details (structured JSON)
    details_json = db.Column(db.Text, nullable=True)

    # Outcome
    success = db.Column(db.Boolean, nullable=False)
    error_message = db.Column(db.Text, nullable=True)

    # Request context
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)

    # Integrity hash (prevents tampering)
    integrity_hash = db.Column(db.String(64), nullable=False)

    def __repr__(self):
        return f'<AuditLog {self.id} - {self.action} by {self.actor_type}>'

    def to_dict(self):
        """Convert audit log to dictionary."""
        return {
            'id': self.id,
            'timestamp': self.timestamp.isoformat(),
            'actor_type': self.actor_type,
            'actor_id': self.actor_id,
            'action': self.action,
            'action_category': self.action_category,
            'resource_type': self.resource_type,
            'resource_id': self.resource_id,
            'document_id': self.document_id,
            'details': json.loads(self.details_json) if self.details_json else None,
            'success': self.success,
            'error_message': self.error_message
        }

    def compute_integrity_hash(self):
        """Compute hash of this record's content for tamper detection."""
        content = f"{self.timestamp}{self.actor_type}{self.actor_id}{self.action}{self.resource_type}{self.resource_id}{self.details_json}"
        return hashlib.sha256(content.encode()).hexdigest()

    def verify_integrity(self):
        """Verify this record has not been tampered with."""
        return self.integrity_hash == self.compute_integrity_hash()
