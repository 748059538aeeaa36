"""
Bearer-token check for the Markbook API.

Every /api/ request needs an HS256 token signed with the markbook secret,
unless its path is in app.config['MARKBOOK_PUBLIC_PATHS']. A missing or bad
token raises AuthError, which the route error handler renders as a 401
{"error": ...} body like any other markbook error.
"""
import logging

import jwt
from flask import current_app, request, g

from markbook.config import JWT_AUDIENCE, config
from markbook.errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_PATHS = ('/api/status',)


def _secret():
    secret = current_app.config.get('JWT_SECRET') or config.jwt_secret
    if not secret:
        raise RuntimeError('MARKBOOK_JWT_SECRET not configured')
    return secret


def decode_teacher_token(token):
    """Return the token's claims, or raise AuthError if it is bad or expired."""
    try:
        return jwt.decode(token, _secret(), algorithms=['HS256'], audience=JWT_AUDIENCE)
    except jwt.InvalidTokenError as e:
        logger.warning("Rejected bearer token for %s: %s", request.path, e)
        raise AuthError("Invalid or expired token") from e


def _bearer_token():
    header = request.headers.get('Authorization', '')
    if not header.startswith('Bearer '):
        raise AuthError("Authentication required")
    return header[len('Bearer '):]


def require_teacher():
    """before_request hook: put the signed-in teacher on flask.g."""
    if not request.path.startswith('/api/') or request.method == 'OPTIONS':
        return
    if request.path in current_app.config['MARKBOOK_PUBLIC_PATHS']:
        return
    claims = decode_teacher_token(_bearer_token())
    g.teacher_id = claims.get('sub')
    g.teacher_email = claims.get('email', '')


def init_auth(app, public_paths=None):
    """Guard the app's /api/ routes. public_paths replaces the default list."""
    if public_paths is None:
        public_paths = DEFAULT_PUBLIC_PATHS
    app.config['MARKBOOK_PUBLIC_PATHS'] = frozenset(public_paths)
    app.before_request(require_teacher)
