"""
ltcheck - Main Flask Application
Serves the checking API for editor integrations on localhost.
"""
from typing import Optional

from flask import Flask, jsonify

from config_logging import get_config, get_logger
from ltcheck.routes import REGISTRY_KEY, lt_blueprint
from ltcheck.session import SessionRegistry

logger = get_logger('app')


def create_app(registry: Optional[SessionRegistry] = None) -> Flask:
    """Build the application; ``registry`` replaces the default session registry."""
    app = Flask(__name__)
    app.config['JSON_SORT_KEYS'] = False
    app.extensions[REGISTRY_KEY] = registry if registry is not None else SessionRegistry()
    app.register_blueprint(lt_blueprint, url_prefix='/api/ltcheck')

    @app.route('/')
    def index():
        """Service description"""
        return jsonify({'name': 'ltcheck', 'api': '/api/ltcheck'})

    return app


if __name__ == '__main__':
    config = get_config()
    _, errors = config.validate()
    for error in errors:
        logger.warning(f"Configuration problem: {error}")
    print("=" * 60)
    print("  ltcheck")
    print(f"  Starting server at http://{config.host}:{config.port}")
    print("=" * 60)
    create_app().run(host=config.host, port=config.port, debug=config.debug)
