"""
project: delve
module: __init__.py
License: MIT

Flask application factory for the layout generation service.

Configuration is sourced from environment variables (optionally via a local
``.env``) with development defaults. The ``instance/`` directory holds
runtime files such as the rotating log.
"""

import logging
import os
import uuid

from dotenv import load_dotenv
from flask import Flask, jsonify

from delve.layout.errors import ConfigError

# Load .env if present so DELVE_* settings can be supplied without exporting
# shell variables during development.
load_dotenv()


def create_app(config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError:
        # instance/ only backs the log file
        pass

    app.config.update(
        DELVE_ENABLE_GENERATION_METRICS=os.getenv("DELVE_ENABLE_GENERATION_METRICS", "1") == "1",
        DELVE_DISABLE_CACHE=os.getenv("DELVE_DISABLE_CACHE", "0") == "1",
    )
    app.json.sort_keys = False
    if config:
        app.config.update(config)

    from delve.routes.layout_api import bp_layout

    app.register_blueprint(bp_layout)

    @app.errorhandler(ConfigError)
    def bad_config(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(500)
    def internal_error(e):
        error_id = uuid.uuid4().hex[:8]
        logging.exception("Unhandled exception (id=%s)", error_id)
        return jsonify({"error": "internal error", "error_id": error_id}), 500

    return app
