"""
Form Rule Engine

Declarative form documents with conditional visibility and validation.

Provides:
- Document parsing and serialization
- Conditional show/hide evaluation
- Field and form validation
- Publish-readiness checks
- A JSON API (rate limited, with security headers)
"""

import os
from datetime import datetime, timezone

from flask import Flask, request, g

from formrules.parser import (
    parse, parse_form_definition, parse_or_raise, serialize,
    ParseResult, ParseIssue, SchemaParseError,
)
from formrules.visibility import (
    is_field_visible, get_visible_fields, is_field_id_visible, get_dependent_field_ids,
)
from formrules.validation import (
    validate_field, validate_form, get_submission_values,
    FieldValidationResult, FormValidationResult,
)
from formrules.readiness import check_form_readiness, ReadinessResult, ReadinessIssue
from formrules.utils import is_value_empty


def create_app(test_config=None):
    """Application factory pattern."""
    app = Flask(__name__, instance_relative_config=True)

    # Default configuration
    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production'),
        MAX_CONTENT_LENGTH=1024 * 1024,  # 1 MiB
        LOG_LEVEL=os.environ.get('LOG_LEVEL', 'INFO'),

        # Rate limiting settings
        RATELIMIT_STORAGE_URI=os.environ.get('REDIS_URL', 'memory://'),
        RATELIMIT_STRATEGY='fixed-window',
        RATELIMIT_ENABLED=os.environ.get('RATELIMIT_ENABLED', 'true').lower() == 'true',
        RATELIMIT_HEADERS_ENABLED=True,
    )

    if test_config is None:
        # Load instance config if it exists
        app.config.from_pyfile('config.py', silent=True)
    else:
        # Load test config
        app.config.from_mapping(test_config)

    app.logger.setLevel(app.config['LOG_LEVEL'])

    from formrules.security import add_security_headers, init_security
    init_security(app)

    # Register blueprints
    from formrules.routes import api_bp
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
        g.request_start_time = datetime.now(timezone.utc)

    @app.after_request
    def log_request(response):
        """Log request completion."""
        if hasattr(g, 'request_start_time'):
            duration = (datetime.now(timezone.utc) - g.request_start_time).total_seconds()
            app.logger.info(
                f'{request.method} {request.path} - {response.status_code} - {duration:.3f}s'
            )
        return response

    # Error handlers
    @app.errorhandler(500)
    def internal_error(error):
        """Handle internal errors."""
        app.logger.error(f'Internal error: {str(error)}')
        return {'ok': False, 'error': 'Internal server error'}, 500

    return app
