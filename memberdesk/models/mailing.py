"""
Mailing domain models.

Models:
    - Contact: a third party addressed (or mentioned) by generated content
    - MailTemplate: reusable generation preset (title, content type, instructions,
      pre-linked contacts that are auto-mentioned)
    - Offer: a service line item that can be highlighted in a mail
    - MailGeneration: immutable record of one saved generation
"""

from datetime import datetime, timezone

from memberdesk.models import db


def _utcnow():
    return datetime.now(timezone.utc)


mail_template_contacts = db.Table(
    "mail_template_contacts",
    db.Column("template_id", db.Integer, db.ForeignKey("mail_templates.id", ondelete="CASCADE"),
              primary_key=True),
    db.Column("contact_id", db.Integer, db.ForeignKey("contacts.id", ondelete="CASCADE"),
              primary_key=True),
)


# ── Contact ───────────────────────────────────────────────────────────────────

class Contact(db.Model):
    __tablename__ = "contacts"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(200), nullable=False)
    company = db.Column(db.String(200), nullable=True)
    job_title = db.Column(db.String(200), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "full_name": self.full_name,
            "company": self.company,
            "job_title": self.job_title,
            "email": self.email,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Contact #{self.id} {self.full_name}>"


# ── MailTemplate ──────────────────────────────────────────────────────────────

class MailTemplate(db.Model):
    __tablename__ = "mail_templates"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    content_type = db.Column(
        db.String(30), nullable=True,
        comment="mail_client | mail_partenariat | mail_relance | linkedin_message | linkedin_post",
    )
    context = db.Column(db.Text, nullable=True, comment="Free-text authoring instructions")
    created_by = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    mentioned_contacts = db.relationship(
        "Contact", secondary=mail_template_contacts, lazy="select",
        order_by="Contact.full_name",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "content_type": self.content_type,
            "context": self.context,
            "mentioned_contact_ids": [c.id for c in self.mentioned_contacts],
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<MailTemplate #{self.id} {self.title}>"


# ── Offer ─────────────────────────────────────────────────────────────────────

class Offer(db.Model):
    __tablename__ = "offers"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ── MailGeneration ────────────────────────────────────────────────────────────

class MailGeneration(db.Model):
    """
    One saved generation. Append-only: rows are created by the "save" action
    and never updated afterwards.
    """

    __tablename__ = "mail_generations"

    id = db.Column(db.Integer, primary_key=True)
    generated_by = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    template_id = db.Column(db.Integer, db.ForeignKey("mail_templates.id", ondelete="SET NULL"), nullable=True)
    contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True)
    content_type = db.Column(db.String(30), nullable=True)
    prompt_final = db.Column(db.Text, nullable=True, comment="Rendered description of the inputs, for audit")
    result = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)

    template = db.relationship("MailTemplate", lazy="joined")
    contact = db.relationship("Contact", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "generated_by": self.generated_by,
            "template_id": self.template_id,
            "template": {"title": self.template.title} if self.template else None,
            "contact_id": self.contact_id,
            "contact": {"full_name": self.contact.full_name} if self.contact else None,
            "content_type": self.content_type,
            "prompt_final": self.prompt_final,
            "result": self.result,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<MailGeneration #{self.id}>"
