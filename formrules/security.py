"""
Security hardening module.

Provides rate limiting and response security headers for the JSON API.
"""

from datetime import timedelta

from flask import request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


# Initialize extensions at module level
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)


# Security configuration defaults
DEFAULT_CONFIG = {
    'SESSION_COOKIE_SECURE': True,
    'SESSION_COOKIE_HTTPONLY': True,
    'SESSION_COOKIE_SAMESITE': 'Lax',
    'PERMANENT_SESSION_LIFETIME': timedelta(hours=1),
}


# Rate limit configurations
RATE_LIMITS = {
    'parse': "60 per minute",
    'visibility': "120 per minute",
    'validate': "60 per minute",
    'readiness': "30 per minute",
    'submit': "10 per minute",
}


def add_security_headers(response):
    """
    Add security headers to response.
    This is a standalone function that can be used as an after_request handler.
    """
    # The API only ever returns JSON
    response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"

    # Prevent MIME type sniffing
    response.headers['X-Content-Type-Options'] = 'nosniff'

    # Prevent clickjacking
    response.headers['X-Frame-Options'] = 'DENY'

    response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

    # Answers may contain personal data
    response.headers['Cache-Control'] = 'no-store'

    return response


def init_security(app):
    """Initialize security extensions with the app."""
    for key, value in DEFAULT_CONFIG.items():
        if key not in app.config:
            app.config[key] = value

    limiter.init_app(app)


def get_client_ip() -> str:
    """Get the client IP address, handling proxies."""
    forwarded_for = request.headers.get('X-Forwarded-For')
    if forwarded_for:
        # First IP in chain
        return forwarded_for.split(',')[0].strip()

    real_ip = request.headers.get('X-Real-Ip')
    if real_ip:
        return real_ip

    return request.remote_addr or 'unknown'
