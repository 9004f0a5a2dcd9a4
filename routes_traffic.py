"""
Flask route handlers for recorded traffic
Read-only: connection catalog, hourly traffic per connection, storage stats
"""
from flask import jsonify, request

from logger import debug, exception, safe_error_response
from stat_keys import ConnInfo
from traffic_storage import StorageError
from version import get_version_info


def register_traffic_routes(app, get_storage):
    """
    Register traffic report routes.

    Args:
        app: Flask application instance
        get_storage: Callable returning the TrafficStorage to read from
    """
    debug("Registering traffic routes")

    @app.route('/api/connections')
    def connections():
        """List every recorded connection."""
        try:
            conns = get_storage().list_connections()
        except StorageError as e:
            exception("Failed to list connections: %s", str(e))
            return jsonify({
                'status': 'error',
                'message': safe_error_response(e, "Failed to list connections")
            }), 500

        return jsonify({
            'status': 'success',
            'connections': [dict(c.to_dict(), id=str(c)) for c in conns]
        })

    @app.route('/api/traffic/<path:connection>')
    def traffic(connection):
        """
        Hourly traffic of one connection.

        Query parameters:
            offset (optional): Hour bucket offset from UTC (default from settings)
        """
        conn = ConnInfo.parse(connection)
        if conn is None:
            return jsonify({
                'status': 'error',
                'message': f"Invalid connection format: {connection} (expected type:name)"
            }), 400

        offset = request.args.get('offset', type=int)
        if offset is None:
            offset = app.config['HOUR_OFFSET']

        try:
            stats = get_storage().query_stats_hourly(conn, offset_hours=offset)
        except StorageError as e:
            exception("Failed to query hourly traffic for %s: %s", conn, str(e))
            return jsonify({
                'status': 'error',
                'message': safe_error_response(e, "Failed to query traffic")
            }), 500

        debug("Returning %d hourly buckets for %s", len(stats), conn)
        return jsonify({
            'status': 'success',
            'connection': str(conn),
            'offset': offset,
            'hourly': [s.to_dict() for s in stats],
            'total': {
                'downlink': sum(s.downlink for s in stats),
                'uplink': sum(s.uplink for s in stats),
            }
        })

    @app.route('/api/storage')
    def storage_stats():
        """Database statistics."""
        try:
            stats = get_storage().get_storage_stats()
        except StorageError as e:
            exception("Failed to get storage stats: %s", str(e))
            return jsonify({
                'status': 'error',
                'message': safe_error_response(e, "Failed to get storage stats")
            }), 500

        return jsonify(dict(stats, status='success'))

    @app.route('/api/version')
    def version():
        return jsonify(get_version_info())
