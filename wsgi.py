"""
WSGI / Flask CLI entry point.

Usage:
    flask --app wsgi run
    flask --app wsgi seed-defaults
    gunicorn wsgi:app
"""

from defect_tracker import create_app

app = create_app()
