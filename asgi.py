"""
asgi.py -- ASGI entry point for RefreshGate.

Run with:  uvicorn asgi:app --reload

api/main.py builds the app; this module only re-exports it so deployment
tooling has a stable import path that does not depend on package layout.
"""

from api.main import app

__all__ = ["app"]
