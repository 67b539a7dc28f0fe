"""
Flask routes for the student registration application.

- Registration page
- Location cascade
- Field and form validation
- Draft autosave, restore and clear
- Submission of both forms
- PDF downloads
"""

import io
from datetime import date, datetime

from flask import Blueprint, render_template, request, jsonify, send_file, current_app

from student_forms.aggregator import form_progress, media_release_defaults
from student_forms.audit_logger import (
    log_submission_created, log_submission_failed, log_validation_failed,
    log_stats_update_failed, log_draft_cleared, log_pdf_generated
)
from student_forms.errors import ConsentFailure, SubmissionFailure, ValidationFailure
from student_forms.fields import FieldValues, FormName, fields_by_section, parse_field_id
from student_forms.locations import LEVELS
from student_forms.pdf_generator import generate_filename, render_form
from student_forms.security import (
    sanitize_payload, get_form_session_id,
    rate_limit_submit, rate_limit_validate, rate_limit_draft, rate_limit_pdf
)
from student_forms.validation import validate_field, validate_form


# Create blueprints
main_bp = Blueprint('main', __name__)
api_bp = Blueprint('api', __name__, url_prefix='/api')

# Store failures the client may retry later
RETRYABLE_CODES = ('unavailable', 'deadline-exceeded', 'resource-exhausted')


def _extension():
    return current_app.extensions['student_forms']


def _form_session():
    """FormSession for the caller's cookie."""
    return _extension()['sessions'].get(get_form_session_id())


def _json_payload():
    """
    JSON body with length-limited strings, or None when the body is missing
    or not an object.

    Markup is kept so a restored draft holds exactly what was typed; it is
    stripped from the session values when the forms are submitted.
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return None
    return sanitize_payload(payload, strip_tags=False)


def _missing_payload():
    return jsonify({
        'ok': False,
        'errors': [{'field': '', 'message': 'No JSON payload provided', 'code': 'missing_payload'}]
    }), 400


def _progress(form_session):
    """Live field counters for both forms."""
    return {
        'student': form_progress(form_session.values, FormName.STUDENT),
        'mediaRelease': form_progress(form_session.values, FormName.MEDIA_RELEASE),
    }


def _location_state(form_session):
    return {
        'ok': True,
        'selection': form_session.selection.to_dict(),
        'views': form_session.cascade.views_dict(),
        'isFallback': form_session.hierarchy.is_fallback,
    }


# Main routes
@main_bp.route('/')
def index():
    """Render the registration page."""
    return render_template(
        'index.html',
        student_sections=fields_by_section(FormName.STUDENT),
        media_sections=fields_by_section(FormName.MEDIA_RELEASE),
    )


# ========================================
# LOCATIONS
# ========================================

@api_bp.route('/locations/counties', methods=['GET'])
def api_counties():
    """All counties, sorted by display name."""
    hierarchy = _extension()['hierarchy']
    form_session = _form_session()
    return jsonify({
        'ok': True,
        'county': form_session.cascade.county_view().to_dict(),
        'isFallback': hierarchy.is_fallback,
        'source': hierarchy.dataset.source,
    }), 200


@api_bp.route('/locations/select', methods=['POST'])
@rate_limit_draft()
def api_select_location():
    """
    Apply one dropdown choice.

    Expects {"level": "county|sub_county|constituency|ward", "id": "..."}.
    An empty id clears the level and everything below it.
    """
    payload = _json_payload()
    if payload is None:
        return _missing_payload()

    level = payload.get('level')
    if level not in LEVELS:
        return jsonify({
            'ok': False,
            'errors': [{'field': 'level', 'message': f'Unknown location level: {level}', 'code': 'invalid'}]
        }), 400

    form_session = _form_session()
    location_id = payload.get('id') or None
    form_session.select_location(level, str(location_id) if location_id is not None else None)
    return jsonify(_location_state(form_session)), 200


# ========================================
# VALIDATION
# ========================================

@api_bp.route('/validate', methods=['POST'])
@rate_limit_validate()
def api_validate():
    """
    Validate the posted field values without submitting.

    Returns:
        JSON response with validation result
    """
    payload = _json_payload()
    if payload is None:
        return _missing_payload()

    form_session = _form_session()
    form_session.update_values(payload.get('values', payload))
    include_media_release = bool(payload.get('includeMediaRelease', False))

    result = validate_form(form_session.values, form_session.selection, date.today(),
                           form_session.config, include_media_release=include_media_release)

    if result.is_valid:
        return jsonify(result.to_dict()), 200
    return jsonify(result.to_dict()), 422


@api_bp.route('/validate-field', methods=['POST'])
@rate_limit_validate()
def api_validate_field():
    """Evaluate one field on input or change. Expects {"field": "...", "value": ...}."""
    payload = _json_payload()
    if payload is None:
        return _missing_payload()

    field_id = parse_field_id(str(payload.get('field', '')))
    if field_id is None:
        return jsonify({
            'ok': False,
            'errors': [{'field': 'field', 'message': 'Unknown field', 'code': 'invalid'}]
        }), 400

    form_session = _form_session()
    state = form_session.field_event(field_id, payload.get('value'), date.today())
    message = validate_field(field_id, form_session.values, date.today(), form_session.config)
    return jsonify({
        'ok': message is None,
        'field': field_id.value,
        'state': state.value,
        'message': message,
        'progress': _progress(form_session),
    }), 200


# ========================================
# DRAFTS
# ========================================

@api_bp.route('/draft', methods=['GET'])
def api_get_draft():
    """Restore the saved draft into the session and return it."""
    form_session = _form_session()
    snapshot = form_session.restore_draft()
    if snapshot is None:
        return jsonify({'ok': True, 'draft': None}), 200

    response = _location_state(form_session)
    response['draft'] = snapshot
    return jsonify(response), 200


@api_bp.route('/draft', methods=['PUT'])
@rate_limit_draft()
def api_save_draft():
    """Field change: merge values and autosave if the debounce interval has passed."""
    payload = _json_payload()
    if payload is None:
        return _missing_payload()

    form_session = _form_session()
    form_session.update_values(payload)
    return jsonify({
        'ok': True,
        'pending': form_session.autosaver.has_pending,
        'progress': _progress(form_session),
    }), 200


@api_bp.route('/draft/flush', methods=['POST'])
@rate_limit_draft()
def api_flush_draft():
    """Unconditional save, sent when the page unloads."""
    payload = _json_payload() or {}
    form_session = _form_session()
    saved = form_session.flush_draft(payload)
    return jsonify({'ok': saved}), 200


@api_bp.route('/draft', methods=['DELETE'])
def api_clear_draft():
    """Reset both forms and remove the saved draft."""
    form_session = _form_session()
    cleared = form_session.clear()
    log_draft_cleared(form_session.session_id)
    _extension()['sessions'].discard(form_session.session_id)
    current_app.logger.info(f'Cleared forms for session {form_session.session_id[:8]}')
    return jsonify({'ok': cleared}), 200


# ========================================
# MEDIA RELEASE
# ========================================

@api_bp.route('/media-release/defaults', methods=['GET'])
def api_media_release_defaults():
    """Prefill for the media release form, taken from the student form."""
    form_session = _form_session()
    return jsonify({
        'ok': True,
        'values': media_release_defaults(form_session.values, date.today()),
    }), 200


# ========================================
# SUBMISSION
# ========================================

@api_bp.route('/submit', methods=['POST'])
@rate_limit_submit()
def api_submit():
    """
    Submit both forms.

    The posted values are merged into the session first, so the client can
    send the final state of the page with the request.

    Returns:
        200 with document ids, 409 while another submit is running,
        422 on validation or consent failure, 502/503 when the store rejects the write
    """
    payload = _json_payload() or {}
    form_session = _form_session()
    if payload.get('values'):
        form_session.update_values(payload['values'])
    # Stored documents never carry markup
    form_session.values = FieldValues(sanitize_payload(form_session.snapshot()))
    include_media_release = bool(payload.get('includeMediaRelease', True))

    service = _extension()['submissions']
    try:
        outcome = service.submit(
            form_session,
            user_agent=request.headers.get('User-Agent'),
            include_media_release=include_media_release,
        )
    except ValidationFailure as e:
        log_validation_failed(e.result.missing, len(e.result.errors))
        body = e.result.to_dict()
        body['message'] = str(e)
        return jsonify(body), 422
    except ConsentFailure as e:
        log_validation_failed(e.missing, len(e.missing))
        return jsonify({
            'ok': False,
            'code': 'consent_required',
            'message': str(e),
            'missing': e.missing,
        }), 422
    except SubmissionFailure as e:
        current_app.logger.error(f'Submission error ({e.code}): {str(e)}')
        log_submission_failed(e.code, str(e))
        status = 503 if e.code in RETRYABLE_CODES else 502
        return jsonify({
            'ok': False,
            'code': e.code,
            'message': e.user_message,
        }), status

    if not outcome.submitted:
        return jsonify({
            'ok': False,
            'code': 'submission_in_progress',
            'message': 'A submission is already in progress.',
        }), 409

    log_submission_created(
        outcome.student_document_id,
        outcome.media_document_id,
        outcome.record.stats_keys()['county'] if outcome.record else None,
    )
    if not outcome.stats_updated:
        log_stats_update_failed(datetime.utcnow().date().isoformat())

    _extension()['sessions'].discard(form_session.session_id)
    current_app.logger.info(f'Submission {outcome.student_document_id} accepted')
    body = outcome.to_dict()
    body['message'] = 'Both forms submitted successfully.'
    return jsonify(body), 200


# ========================================
# PDF
# ========================================

@api_bp.route('/pdf/<form>', methods=['GET', 'POST'])
@rate_limit_pdf()
def api_pdf(form: str):
    """
    Download one form as a PDF.

    POSTed values are merged into the session before rendering.
    """
    try:
        form_name = FormName(form)
    except ValueError:
        return jsonify({'ok': False, 'error': f'Unknown form: {form}'}), 404

    form_session = _form_session()
    if request.method == 'POST':
        payload = _json_payload()
        if payload:
            form_session.update_values(payload)

    config = form_session.config
    pdf_bytes, pdf_hash = render_form(form_name, form_session.values, form_session.selection,
                                      config, datetime.utcnow())
    log_pdf_generated(form_name.value, pdf_hash)

    return send_file(
        io.BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=True,
        download_name=generate_filename(form_name, form_session.values, date.today(), config.org_code)
    )
