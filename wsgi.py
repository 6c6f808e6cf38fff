"""
WSGI entry point for the PoolGuy Strip Normalizer.

Usage:
    gunicorn -w 4 -b 0.0.0.0:8080 --timeout 120 wsgi:application

Run `python app.py` for a local development server.
"""

from app import app

application = app
