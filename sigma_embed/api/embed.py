"""Signed embed URL endpoint.

- GET /embed-url
    - Returns ``{"url": "<signed url>"}`` with a fresh nonce and timestamp.
    - The response is marked ``no-store``: the URL is a bearer credential for
      the whole session window.
"""

from flask import jsonify

from sigma_embed.api import api_bp
from sigma_embed.embed_config import current_embed_config
from sigma_embed.security import build_signed_url


@api_bp.route("/embed-url", methods=["GET"])
def embed_url():
    url = build_signed_url(current_embed_config())
    response = jsonify({"url": url})
    response.headers["Cache-Control"] = "no-store"
    return response
