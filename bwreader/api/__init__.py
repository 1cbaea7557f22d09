"""REST and WebSocket API layer for bitwarden-reader.

Exposes:
    create_app -- FastAPI application factory.
    build_app  -- Alias for create_app (used by bwreader.app bootstrap).
"""

from bwreader.api.app import create_app

build_app = create_app

__all__ = ["build_app", "create_app"]
