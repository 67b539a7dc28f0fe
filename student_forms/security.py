"""
Security hardening module.

Provides CSRF protection, rate limiting, input sanitization
and the per-client form session id.
"""

import re
import secrets
from datetime import timedelta
from typing import Any

from flask import session
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_wtf.csrf import CSRFProtect


# Initialize extensions at module level
csrf = CSRFProtect()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["2000 per day", "300 per hour"]
)


# Security configuration defaults
DEFAULT_CONFIG = {
    'SESSION_COOKIE_SECURE': True,
    'SESSION_COOKIE_HTTPONLY': True,
    'SESSION_COOKIE_SAMESITE': 'Lax',
    'PERMANENT_SESSION_LIFETIME': timedelta(hours=12),
    'WTF_CSRF_TIME_LIMIT': 3600,  # 1 hour
    'WTF_CSRF_SSL_STRICT': True,
}


def add_security_headers(response):
    """
    Add security headers to response.
    This is a standalone function that can be used as an after_request handler.
    """
    # Content Security Policy
    response.headers['Content-Security-Policy'] = (
        "default-src 'self'; "
        "script-src 'self' 'unsafe-inline'; "
        "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com; "
        "font-src 'self' https://fonts.gstatic.com; "
        "img-src 'self' data:; "
        "connect-src 'self';"
    )

    # Prevent MIME type sniffing
    response.headers['X-Content-Type-Options'] = 'nosniff'

    # Prevent clickjacking
    response.headers['X-Frame-Options'] = 'DENY'

    # Referrer policy
    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

    return response


def init_security(app):
    """Initialize security extensions with the app."""
    # Apply default security config
    for key, value in DEFAULT_CONFIG.items():
        if key not in app.config:
            app.config[key] = value

    # Initialize CSRF protection
    csrf.init_app(app)

    # Initialize rate limiter
    limiter.init_app(app)


# Rate limit configurations
RATE_LIMITS = {
    'submit': "10 per hour",
    'validate': "120 per hour",
    'draft': "600 per hour",
    'pdf': "30 per hour",
}


def rate_limit_submit():
    """Decorator for submission endpoint rate limiting."""
    return limiter.limit(RATE_LIMITS['submit'])


def rate_limit_validate():
    """Decorator for validation endpoint rate limiting."""
    return limiter.limit(RATE_LIMITS['validate'])


def rate_limit_draft():
    """Decorator for draft autosave rate limiting."""
    return limiter.limit(RATE_LIMITS['draft'])


def rate_limit_pdf():
    """Decorator for PDF download rate limiting."""
    return limiter.limit(RATE_LIMITS['pdf'])


# Input sanitization
HTML_TAG_PATTERN = re.compile(r'<[^>]+>')
SCRIPT_PATTERN = re.compile(r'<script[^>]*>.*?</script>', re.DOTALL | re.IGNORECASE)
EVENT_HANDLER_PATTERN = re.compile(r'on\w+\s*=', re.IGNORECASE)


def sanitize_string(value: str, max_length: int = 2000, strip_tags: bool = True) -> str:
    """
    Sanitize a string value for safe storage and display.

    Args:
        value: Input string
        max_length: Maximum allowed length
        strip_tags: Remove scripts, event handlers and HTML tags; when False
            only the length limit applies

    Returns:
        Sanitized string
    """
    if value is None:
        return ''

    if not isinstance(value, str):
        value = str(value)

    if strip_tags:
        # Remove script tags
        value = SCRIPT_PATTERN.sub('', value)

        # Remove event handlers
        value = EVENT_HANDLER_PATTERN.sub('', value)

        # Remove all HTML tags
        value = HTML_TAG_PATTERN.sub('', value)

    # Limit length
    value = value[:max_length]

    return value


def sanitize_payload(payload: Any, strip_tags: bool = True) -> Any:
    """
    Recursively sanitize all string values in a payload.

    Booleans and numbers pass through untouched so checkbox values survive.
    """
    if isinstance(payload, dict):
        return {k: sanitize_payload(v, strip_tags) for k, v in payload.items()}
    elif isinstance(payload, list):
        return [sanitize_payload(item, strip_tags) for item in payload]
    elif isinstance(payload, str):
        return sanitize_string(payload, strip_tags=strip_tags)
    else:
        return payload


def get_form_session_id() -> str:
    """Id of the caller's FormSession, created on first use and kept in the session cookie."""
    form_session_id = session.get('form_session_id')
    if not form_session_id:
        form_session_id = secrets.token_urlsafe(24)
        session['form_session_id'] = form_session_id
        session.permanent = True
    return form_session_id
