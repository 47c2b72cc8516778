"""
extensions.py — Flask extension singletons.

Created unbound here and attached in create_app() via init_app(app), so
tests can build isolated app instances:

    from backend.app.extensions import db, ma
"""

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

# Request schemas in app/schemas/ inherit marshmallow.Schema, NOT ma.Schema:
# ma.Schema needs an application context and the unit tests run without one.
# `ma` is used for the model-backed response schemas only.
ma = Marshmallow()
