"""
MemberDesk
SQLAlchemy models package.

The shared ``db`` instance lives here so that every model module, service
and blueprint imports it from one place:

    from memberdesk.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
