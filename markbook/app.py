#!/usr/bin/env python3
"""
Markbook API server
===================
Run: python3 -m markbook.app
Then call: http://localhost:3000/api/status
"""
import logging

from flask import Flask
from flask_cors import CORS

from markbook.auth import init_auth
from markbook.config import HOST, PORT, DEBUG, config
from markbook.routes import register_routes
from markbook.store import MarkbookStore

logger = logging.getLogger(__name__)


def create_app(store=None, jwt_secret=None, public_paths=None):
    app = Flask(__name__)
    CORS(app)
    app.config['JWT_SECRET'] = jwt_secret or config.jwt_secret

    # Auth hook must be registered before the blueprints
    init_auth(app, public_paths)

    if store is None:
        store = MarkbookStore(config.data_file)
    register_routes(app, store)
    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.DEBUG if DEBUG else logging.INFO)
    app = create_app()
    logger.info("Markbook API on http://%s:%s (data: %s)", HOST, PORT, config.data_file)
    app.run(host=HOST, port=PORT, debug=DEBUG)
