"""
Financing Application Portal
Shared SQLAlchemy instance. Every model module imports ``db`` from here.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
