"""
totracker
Database handle shared by all model modules.

Usage:
    from totracker.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
