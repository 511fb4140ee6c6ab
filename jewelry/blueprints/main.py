"""Health check endpoints."""
from flask import Blueprint, jsonify
from sqlalchemy import text

from jewelry.database import get_session

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Database health check.

    Returns:
        200: Healthy (DB connected)
        500: Unhealthy (DB error)
    """
    try:
        row = get_session().execute(text("SELECT 1")).fetchone()
        if row and row[0] == 1:
            return jsonify({'status': 'healthy', 'database': 'connected'}), 200
        return jsonify({'status': 'unhealthy', 'database': 'error'}), 500
    except Exception as e:
        return jsonify({'status': 'unhealthy', 'database': 'disconnected', 'error': str(e)}), 500


@main_bp.route('/health/cache')
def health_cache():
    """
    Cache health check.

    Never returns 500: pricing and tax work without Redis, so an unreachable
    cache only reports "degraded".
    """
    try:
        from jewelry.services.cache_service import get_cache
        cache = get_cache()

        if not cache.is_available():
            return jsonify({'status': 'degraded', 'cache': 'unavailable'}), 200

        if cache.health_check():
            return jsonify({'status': 'ok', 'cache': 'connected'}), 200
        return jsonify({'status': 'degraded', 'cache': 'connected_but_failing'}), 200

    except Exception as e:
        return jsonify({'status': 'degraded', 'cache': 'error', 'error': str(e)}), 200
