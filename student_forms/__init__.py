"""
University of Eldoret Student Registration Application

Student personal details form with an attached media release consent form.

Enhanced with:
- Cascading Kenyan location selection
- Draft autosave
- CSRF protection
- Rate limiting
- Security headers
- Audit logging
"""

import os
from datetime import datetime
from flask import Flask, request, g
from flask_sqlalchemy import SQLAlchemy

# Initialize extensions
db = SQLAlchemy()


def create_app(test_config=None):
    """Application factory pattern."""
    app = Flask(__name__, instance_relative_config=True)

    from student_forms.config import DEFAULT_SETTINGS, FormConfig

    # Default configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production'),
        SQLALCHEMY_DATABASE_URI=os.environ.get('DATABASE_URL', 'sqlite:///student_forms.db'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        PERMANENT_SESSION_LIFETIME=43200,  # 12 hours

        # CSRF settings
        WTF_CSRF_ENABLED=True,
        WTF_CSRF_TIME_LIMIT=3600,  # 1 hour
        WTF_CSRF_SSL_STRICT=False,  # Disabled for development

        # Rate limiting settings
        RATELIMIT_STORAGE_URI=os.environ.get('REDIS_URL', 'memory://'),
        RATELIMIT_STRATEGY='fixed-window',
        RATELIMIT_HEADERS_ENABLED=True,

        **DEFAULT_SETTINGS
    )

    if test_config is None:
        # Load instance config if it exists
        app.config.from_pyfile('config.py', silent=True)
    else:
        # Load test config
        app.config.from_mapping(test_config)

    # Ensure instance folder exists
    try:
        os.makedirs(app.instance_path)
    except OSError:
        pass

    # Initialize extensions with app
    db.init_app(app)

    # Import and initialize security (after db init to avoid circular imports)
    from student_forms.security import add_security_headers, init_security
    init_security(app)

    # Form services
    from student_forms.document_store import SqlDocumentStore
    from student_forms.drafts import DraftAutosaver, SqlDraftStore, draft_key
    from student_forms.locations import LocationHierarchy
    from student_forms.session import FormSession, SessionRegistry
    from student_forms.submission import SubmissionService

    form_config = FormConfig.from_mapping(app.config)
    hierarchy = app.config.get('LOCATION_HIERARCHY') or LocationHierarchy(
        form_config.location_data_url,
        timeout=form_config.location_load_timeout,
        base_path=app.root_path,
    )
    document_store = app.config.get('DOCUMENT_STORE') or SqlDocumentStore(db)
    draft_store = app.config.get('DRAFT_STORE') or SqlDraftStore(db)

    def new_form_session(session_id):
        autosaver = DraftAutosaver(
            draft_store,
            draft_key(form_config.draft_storage_key, session_id),
            debounce_seconds=form_config.autosave_debounce_seconds,
        )
        return FormSession(session_id, hierarchy, autosaver, form_config)

    app.extensions['student_forms'] = {
        'config': form_config,
        'hierarchy': hierarchy,
        'sessions': SessionRegistry(
            new_form_session,
            ttl_seconds=app.permanent_session_lifetime.total_seconds(),
            sweep_interval=form_config.autosave_debounce_seconds,
        ),
        'submissions': SubmissionService(document_store, form_config),
    }

    # Register blueprints
    from student_forms.routes import main_bp, api_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(api_bp)

    # Add security headers to all responses
    @app.after_request
    def after_request(response):
        """Add security headers to all responses."""
        return add_security_headers(response)

    # Request logging
    @app.before_request
    def before_request():
        """Log request start."""
        g.request_start_time = datetime.utcnow()

    @app.after_request
    def log_request(response):
        """Log request completion."""
        if hasattr(g, 'request_start_time'):
            duration = (datetime.utcnow() - g.request_start_time).total_seconds()
            app.logger.info(
                f'{request.method} {request.path} - {response.status_code} - {duration:.3f}s'
            )
        return response

    # Create database tables
    with app.app_context():
        from student_forms import models  # noqa: F401
        db.create_all()

    # Load locations once at startup; failures degrade to the county list
    dataset = hierarchy.load()
    if hierarchy.is_fallback:
        app.logger.warning(f'Using fallback county list: {hierarchy.load_error}')
    else:
        app.logger.info(f'Loaded {len(dataset.counties)} counties from {dataset.source}')

    # Template globals
    @app.context_processor
    def inject_globals():
        return {
            'current_year': datetime.utcnow().year,
            'app_name': 'University of Eldoret Student Registration',
            'form_config': form_config,
        }

    # Error handlers
    @app.errorhandler(500)
    def internal_error(error):
        """Handle internal errors."""
        db.session.rollback()
        app.logger.error(f'Internal error: {str(error)}')
        return {'ok': False, 'error': 'Internal server error'}, 500

    return app
