"""
REST status API

Read-only HTTP endpoints exposing the state of a mission run.
"""

import threading
from typing import Optional
import logging

try:
    from flask import Flask, request, jsonify
    from flask_cors import CORS
    FLASK_AVAILABLE = True
except ImportError:
    FLASK_AVAILABLE = False

from .. import __version__
from ..orchestrator.sink import RunRecorder

logger = logging.getLogger(__name__)


def create_api_server(recorder: RunRecorder,
                      port: int = 8080,
                      host: str = '0.0.0.0') -> Optional['APIServer']:
    """
    Create and start REST API server

    Args:
        recorder: Run recorder fed by the mission run
        port: HTTP port
        host: Host address

    Returns:
        APIServer instance or None if Flask not available
    """
    if not FLASK_AVAILABLE:
        logger.warning("Flask not installed - REST API disabled")
        return None

    server = APIServer(recorder, port, host)
    server.start()
    return server


class APIServer:
    """REST API Server"""

    def __init__(self, recorder: RunRecorder, port: int = 8080, host: str = '0.0.0.0'):
        self.recorder = recorder
        self.port = port
        self.host = host

        self.app = Flask(__name__)
        CORS(self.app)

        self._thread: Optional[threading.Thread] = None
        self._setup_routes()

    def _setup_routes(self):
        """Setup API routes"""

        @self.app.route('/api/health', methods=['GET'])
        def health():
            """Health check endpoint"""
            status = self.recorder.get_status()
            return jsonify({
                'status': 'ok',
                'version': __version__,
                'state': status['state'],
            })

        @self.app.route('/api/status', methods=['GET'])
        def get_status():
            """Run state, last position and progress, outcome"""
            return jsonify(self.recorder.get_status())

        @self.app.route('/api/logs', methods=['GET'])
        def get_logs():
            """
            Run log lines

            Query: since=<index> returns only newer entries
            Returns: {logs, next}
            """
            since = request.args.get('since', '0')
            try:
                since = int(since)
            except ValueError:
                return jsonify({'error': f"Invalid 'since' value: {since}"}), 400
            if since < 0:
                return jsonify({'error': "'since' must not be negative"}), 400

            entries, next_index = self.recorder.get_logs(since)
            return jsonify({'logs': entries, 'next': next_index})

        @self.app.errorhandler(404)
        def not_found(e):
            return jsonify({'error': 'Not found'}), 404

    def start(self):
        """Start API server in background thread"""
        self._thread = threading.Thread(
            target=lambda: self.app.run(
                host=self.host,
                port=self.port,
                debug=False,
                use_reloader=False
            ),
            daemon=True
        )
        self._thread.start()
        logger.info(f"REST API started on http://{self.host}:{self.port}")
