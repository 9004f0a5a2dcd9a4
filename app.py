"""
Flask application serving recorded traffic as JSON
The web process only reads; clock.py is the only writer.
"""
import os

from flask import Flask, request

from config import load_settings, resolve_db_path
from logger import info


def create_app(storage=None):
    """
    Build the reporting application.

    Args:
        storage: TrafficStorage to read from. When omitted, one is opened
            lazily from the db_path setting on first request.

    Returns:
        Flask application
    """
    app = Flask(__name__)
    settings = load_settings()
    app.config['HOUR_OFFSET'] = settings.get('hour_offset')

    # Reuse a single TrafficStorage instance across requests
    _storage_instance = storage

    def get_storage():
        nonlocal _storage_instance
        if _storage_instance is None:
            from traffic_storage import StorageError, TrafficStorage
            db_path = resolve_db_path(settings.get('db_path'))
            if not db_path:
                raise StorageError("No database path provided and no default database found.")
            _storage_instance = TrafficStorage(db_path)
            info("Opened traffic database %s for reporting", db_path)
        return _storage_instance

    @app.after_request
    def add_security_headers(response):
        """Add no-cache and security headers"""
        if request.path.startswith('/api/'):
            response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, private'
            response.headers['Pragma'] = 'no-cache'
            response.headers['Expires'] = '0'

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'SAMEORIGIN'
        return response

    from routes import register_routes
    register_routes(app, get_storage)

    return app


if __name__ == '__main__':
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() in ('true', '1', 'yes')
    port = int(os.environ.get('V2STAT_HTTP_PORT', 3000))

    create_app().run(debug=debug_mode, host='127.0.0.1', port=port, use_reloader=False, threaded=True)
