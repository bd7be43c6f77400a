"""
Partner Hub — Escalation Engine
Shared SQLAlchemy handle.

Every model module imports ``db`` from here; the Flask app binds it in
``create_app()`` via ``db.init_app(app)``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
