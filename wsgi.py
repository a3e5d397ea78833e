"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi seed-demo
    gunicorn wsgi:app
"""

from totracker import create_app

app = create_app()
