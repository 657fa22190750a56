"""Health endpoints for the API blueprint.

Mounts served by this module:

- GET /health
    - Purpose: simple liveness/health-check used by load balancers and orchestration
        to verify the API process is running.
    - Parameters: none

No embed URL is signed here, so probes never consume nonces or show up in
signing logs.
"""

from flask import jsonify

from sigma_embed.api import api_bp
from sigma_embed.version import __version__


@api_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint.

    Returns a JSON payload with a short status message. No auth required.
    """
    return jsonify(
        {
            "status": "healthy",
            "message": "Sigma embed API is running",
            "version": __version__,
        }
    )
