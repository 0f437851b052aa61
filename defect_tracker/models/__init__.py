"""
Defect Tracker: ORM models.

All model modules share the single ``db`` handle defined here:

    from defect_tracker.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
