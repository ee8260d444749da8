"""
IP filter service - Flask application for path-scoped IP/country access control.
Provides a ForwardAuth endpoint for Traefik and similar reverse proxies.
"""

import os
import logging
from flask import Flask, jsonify

from .config import load_config
from .utils import forwarded_path
from .verification import verify_request

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class HealthCheckFilter(logging.Filter):
    """Suppress request logs for the /health endpoint."""
    def filter(self, record):
        return '/health' not in record.getMessage()


# Apply filter to werkzeug logger (Flask's HTTP request logger)
logging.getLogger('werkzeug').addFilter(HealthCheckFilter())


def create_app(config=None):
    """
    Create the ForwardAuth application.

    Args:
        config: FilterConfig; loaded from the YAML config if not given
    """
    if config is None:
        config = load_config()

    app = Flask(__name__)

    @app.route('/verify', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS'])
    def verify():
        """ForwardAuth verification endpoint."""
        response = verify_request(config, path=forwarded_path())
        if response is None:
            return '', 200
        return response

    @app.route('/health')
    def health():
        """Health check endpoint."""
        status = {
            "status": "healthy",
            "country_db": config.country_reader is not None,
            "rule_count": len(config.rules),
            "rules": [
                {
                    "scopes": list(rule.scopes),
                    "rule": "block" if rule.is_block else "allow",
                    "strict": rule.strict,
                    "country_codes": sorted(rule.country_codes),
                    "range_count": len(rule.ranges),
                    "block_page": rule.block_page is not None
                }
                for rule in config.rules
            ]
        }
        return jsonify(status), 200

    return app


if __name__ == '__main__':
    port = int(os.getenv('PORT', 9876))
    create_app().run(host='0.0.0.0', port=port, debug=False)
