"""
Main Routes

FLOW OVERVIEW
- / [GET]
  • API welcome payload.
- /health [GET]
  • JSON health check.
- /metrics [GET]
  • Prometheus exposition.
"""

from datetime import datetime
from flask import Blueprint, jsonify, Response, url_for

from ..utils.prom_metrics import metrics_latest, CONTENT_TYPE_LATEST

main_bp = Blueprint('main', __name__)

SERVICE_NAME = 'LICEA API'
VERSION = '1.0.0'


@main_bp.route('/')
def home():
    """API root"""
    return jsonify({
        'success': True,
        'message': f'Welcome to {SERVICE_NAME}',
        'version': VERSION,
        'health': url_for('main.health'),
    })


@main_bp.route('/health')
def health():
    """Health check endpoint"""
    return jsonify({
        'status': 'OK',
        'timestamp': datetime.utcnow().isoformat(),
        'service': SERVICE_NAME,
        'version': VERSION,
    })


@main_bp.route('/metrics')
def metrics():
    """Prometheus metrics endpoint."""
    return Response(metrics_latest(), content_type=CONTENT_TYPE_LATEST)
