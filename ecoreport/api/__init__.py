"""
EcoReport - API Module
REST and WebSocket endpoints.
"""

from ecoreport.api.main import app, create_app

__all__ = ["app", "create_app"]
