"""
Public Pulse
Domain models package.

All models share the single ``db`` instance created here so that
``from public_pulse.models import db`` works everywhere (services, tests,
migrations).
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
