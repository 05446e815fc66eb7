"""
asgi.py -- Application assembly for Lorekeeper.

The single import point for ASGI servers. api/main.py builds the app;
nothing else needs to be mounted.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
