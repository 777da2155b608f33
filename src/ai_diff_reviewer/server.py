"""
Review Server

Read-only HTTP API over the run store.
"""

import logging

from flask import Flask, Response, jsonify
from flask_cors import CORS

from . import __version__
from .runs.store import RunNotFoundError, RunStore


logger = logging.getLogger(__name__)


def create_app(store: RunStore) -> Flask:
    """
    Build the Flask application.

    Args:
        store: Run store the API reads from
    """
    app = Flask(__name__)
    CORS(app)  # Enable CORS for a separately served viewer

    @app.route('/api/v1/health', methods=['GET'])
    def health_check():
        """Health check endpoint."""
        return jsonify({
            'status': 'healthy',
            'service': 'ai-diff-reviewer',
            'version': __version__,
        })

    @app.route('/api/runs', methods=['GET'])
    def list_runs():
        runs = store.list()
        return jsonify({'runs': [meta.to_dict() for meta in runs]})

    @app.route('/api/run/<run_id>', methods=['GET'])
    def get_run(run_id: str):
        try:
            review = store.read_raw(run_id)
        except RunNotFoundError:
            return jsonify({'error': 'Run not found'}), 404
        return Response(review, mimetype='application/json')

    @app.route('/api/run/<run_id>/diff', methods=['GET'])
    def get_run_diff(run_id: str):
        try:
            diff_text = store.read_diff(run_id)
        except RunNotFoundError:
            return jsonify({'error': 'Run not found'}), 404
        return Response(diff_text, mimetype='text/plain')

    logger.debug(f"Created API app for {store.runs_root}")
    return app


def run_server(store: RunStore, host: str = "127.0.0.1", port: int = 8765, debug: bool = False) -> None:
    app = create_app(store)
    logger.info(f"Server running at http://{host}:{port}")
    app.run(host=host, port=port, debug=debug)
