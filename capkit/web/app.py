"""
capkit Flask application
"""

from flask import Flask
from flask_cors import CORS

DEFAULT_CONFIG = {
    'MAX_CONTENT_LENGTH': 1024 * 1024,  # CAP documents are small; 1 MiB is plenty
    'CAP_DEFAULT_VERSION': '1.2',
}


def create_app(config=None):
    app = Flask(__name__)
    app.config.update(DEFAULT_CONFIG)
    # CAPKIT_CAP_DEFAULT_VERSION=1.1 etc.
    app.config.from_prefixed_env('CAPKIT')
    if config:
        app.config.update(config)
    CORS(app)

    # register blueprints
    from .routes import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    return app
