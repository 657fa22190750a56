#
# API routes and endpoints
#
# Endpoints live in small modules under `sigma_embed.api.*`:
#   - sigma_embed.api.health: Health check endpoint
#   - sigma_embed.api.embed: Signed embed URL endpoint
#
# Importing this module registers them on the shared `api_bp` blueprint.
#
import importlib

from sigma_embed.api import api_bp

importlib.import_module("sigma_embed.api.health")
importlib.import_module("sigma_embed.api.embed")

__all__ = ["api_bp"]
