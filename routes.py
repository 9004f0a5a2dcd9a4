"""
Flask route orchestrator - Registers all route modules
"""
from logger import debug, info


def register_routes(app, get_storage):
    """
    Register all Flask routes.

    Args:
        app: Flask application instance
        get_storage: Callable returning the TrafficStorage used by the routes
    """
    info("=== Starting route registration ===")

    from routes_traffic import register_traffic_routes

    register_traffic_routes(app, get_storage)
    debug("✓ Traffic routes registered")

    info("Total endpoints registered: %d", len([rule for rule in app.url_map.iter_rules()]))
