"""
Website contact-form submissions.

Every submission is stored, whatever the outcome of the e-mail delivery,
so nothing sent through the public site is lost.
"""

from datetime import datetime, timezone

from memberdesk.models import db

DELIVERY_STATUSES = {"pending", "sent", "logged", "failed"}


class ContactMessage(db.Model):
    __tablename__ = "contact_messages"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(200), nullable=True)
    message = db.Column(db.Text, nullable=False)
    delivery_status = db.Column(db.String(20), nullable=False, default="pending",
                                comment="pending | sent | logged | failed")
    delivery_error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "company": self.company,
            "message": self.message,
            "delivery_status": self.delivery_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ContactMessage #{self.id} {self.email} {self.delivery_status}>"
