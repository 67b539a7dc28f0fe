"""
Audit logging module for immutable audit trail.

All significant actions are logged with integrity verification.
This module is append-only - records are never modified or deleted.
"""

import json
from datetime import datetime
from typing import Dict, Any, List, Optional
from flask import request, current_app
from sqlalchemy.exc import SQLAlchemyError

from student_forms import db
from student_forms.models import AuditLog


class AuditAction:
    """Constants for audit actions."""
    # Submission actions
    SUBMISSION_CREATED = 'submission_created'
    SUBMISSION_FAILED = 'submission_failed'
    VALIDATION_FAILED = 'validation_failed'
    STATS_UPDATE_FAILED = 'stats_update_failed'

    # Draft actions
    DRAFT_CLEARED = 'draft_cleared'

    # Document actions
    PDF_GENERATED = 'pdf_generated'


class AuditCategory:
    """Constants for audit action categories."""
    CREATE = 'create'
    DELETE = 'delete'
    GENERATE = 'generate'
    SYSTEM = 'system'


def log_action(
    action: str,
    action_category: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    document_id: Optional[str] = None,
    actor_type: str = 'system',
    actor_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    success: bool = True,
    error_message: Optional[str] = None
) -> Optional[AuditLog]:
    """
    Log an action to the audit trail.

    Args:
        action: The action performed (use AuditAction constants)
        action_category: Category of action (use AuditCategory constants)
        resource_type: Type of resource affected
        resource_id: Identifier of the resource
        document_id: Associated submission document id if applicable
        actor_type: Type of actor ('user', 'system')
        actor_id: Identifier of the actor (IP address)
        details: Additional structured details
        success: Whether the action succeeded
        error_message: Error message if action failed

    Returns:
        The created AuditLog record, or None if it could not be written
    """
    try:
        # Get request context if available
        ip_address = None
        user_agent = None

        try:
            if request:
                ip_address = request.remote_addr
                user_agent = request.headers.get('User-Agent')

                # Infer actor from request if not provided
                if actor_type == 'user' and not actor_id:
                    actor_id = ip_address
        except RuntimeError:
            # Outside request context
            pass

        audit_log = AuditLog(
            timestamp=datetime.utcnow(),
            action=action,
            action_category=action_category,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            document_id=document_id,
            actor_type=actor_type,
            actor_id=actor_id,
            details_json=json.dumps(details, sort_keys=True) if details else None,
            success=success,
            error_message=error_message,
            ip_address=ip_address,
            user_agent=user_agent
        )

        # Compute integrity hash
        audit_log.integrity_hash = audit_log.compute_integrity_hash()

        db.session.add(audit_log)
        db.session.commit()

        return audit_log

    except SQLAlchemyError as e:
        db.session.rollback()
        # Audit logging should not break the form flow
        current_app.logger.error(f'Failed to create audit log: {str(e)}')
        return None


def log_submission_created(student_document_id: str, media_document_id: Optional[str],
                           county: Optional[str]) -> Optional[AuditLog]:
    """Log a successful submission."""
    return log_action(
        action=AuditAction.SUBMISSION_CREATED,
        action_category=AuditCategory.CREATE,
        resource_type='submission',
        resource_id=student_document_id,
        document_id=student_document_id,
        actor_type='user',
        details={'media_document_id': media_document_id, 'county': county}
    )


def log_submission_failed(code: str, message: str) -> Optional[AuditLog]:
    """Log a document store rejection."""
    return log_action(
        action=AuditAction.SUBMISSION_FAILED,
        action_category=AuditCategory.CREATE,
        resource_type='submission',
        actor_type='user',
        details={'code': code},
        success=False,
        error_message=message
    )


def log_validation_failed(missing: List[str], error_count: int) -> Optional[AuditLog]:
    """Log a submission blocked by validation or consent."""
    return log_action(
        action=AuditAction.VALIDATION_FAILED,
        action_category=AuditCategory.SYSTEM,
        resource_type='submission',
        actor_type='user',
        details={'error_count': error_count, 'missing': missing},
        success=False
    )


def log_stats_update_failed(date_key: str) -> Optional[AuditLog]:
    """Log a failed statistics side write."""
    return log_action(
        action=AuditAction.STATS_UPDATE_FAILED,
        action_category=AuditCategory.SYSTEM,
        resource_type='submission_stats',
        resource_id=date_key,
        success=False
    )


def log_draft_cleared(session_id: str) -> Optional[AuditLog]:
    """Log an explicit clear of both forms."""
    return log_action(
        action=AuditAction.DRAFT_CLEARED,
        action_category=AuditCategory.DELETE,
        resource_type='draft',
        resource_id=session_id[:16],
        actor_type='user'
    )


def log_pdf_generated(form: str, pdf_hash: str) -> Optional[AuditLog]:
    """Log PDF generation."""
    return log_action(
        action=AuditAction.PDF_GENERATED,
        action_category=AuditCategory.GENERATE,
        resource_type='pdf',
        resource_id=pdf_hash[:16],
        actor_type='user',
        details={'form': form, 'pdf_hash': pdf_hash}
    )


def verify_audit_integrity() -> tuple:
    """
    Verify integrity of all audit log records.

    Returns:
        Tuple of (valid_count, invalid_count, invalid_ids)
    """
    logs = AuditLog.query.all()
    valid_count = 0
    invalid_count = 0
    invalid_ids = []

    for log in logs:
        if log.verify_integrity():
            valid_count += 1
        else:
            invalid_count += 1
            invalid_ids.append(log.id)

    return valid_count, invalid_count, invalid_ids
