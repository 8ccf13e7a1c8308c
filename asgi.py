"""
asgi.py -- ASGI entry point for TaskTrack.

Builds the app from environment-derived Settings. Tests call
api.main.create_app() with explicit Settings instead of importing this module.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app

app = create_app()
