"""
Main user-facing routes.

GET / returns a page whose iframe points at a freshly signed embed URL.
"""
from flask import Blueprint, make_response, render_template

from sigma_embed.embed_config import current_embed_config
from sigma_embed.security import build_signed_url

main_bp = Blueprint("main", __name__)


@main_bp.route("/", methods=["GET"])
def index():
    """Render the embed page with a one-time signed iframe URL."""
    url = build_signed_url(current_embed_config())
    response = make_response(render_template("embed.html", embed_url=url))
    response.headers["Cache-Control"] = "no-store"
    return response
