"""
WSGI / Flask-Migrate entry point.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db migrate -m "description"
    flask --app wsgi db upgrade
"""

from public_pulse import create_app

app = create_app()
