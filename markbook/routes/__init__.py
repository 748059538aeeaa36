"""
Markbook API Routes
===================

All API route blueprints for the Markbook service.

Usage:
    from markbook.routes import register_routes
    register_routes(app, store)
"""
import logging

from flask import jsonify

from markbook.errors import APIError, MarkbookError, ValidationError
from .class_routes import class_bp
from .score_routes import score_bp

logger = logging.getLogger(__name__)


def handle_markbook_error(error):
    """Render store/validation errors as {"error": message} with a matching status."""
    if isinstance(error, APIError) and error.status_code:
        status = error.status_code
    elif isinstance(error, ValidationError):
        status = 400
    else:
        status = 500
        logger.error("Unhandled markbook error: %s", error)
    return jsonify({"error": str(error)}), status


def register_routes(app, store):
    """Register all route blueprints with the Flask app."""
    app.extensions['markbook_store'] = store
    app.register_error_handler(MarkbookError, handle_markbook_error)

    app.register_blueprint(class_bp)
    app.register_blueprint(score_bp)

    @app.route('/api/status')
    def status():
        return jsonify({"status": "ok"})


__all__ = [
    'register_routes',
    'class_bp',
    'score_bp',
]
