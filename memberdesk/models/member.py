"""
Member model — the authenticated actor of the dashboard.

A member belongs to exactly one pole (organisational unit) and holds one
role. The (role, pole) pair drives every permission decision:

    presidence               → manages every pole
    responsable of pole X    → manages pole X formations
    normal                   → learner only

The member profile is also the source of the sender identity injected
into generated mails (see memberdesk.ai.prompts.SenderIdentity).
"""

from datetime import datetime, timezone

from memberdesk.models import db

# ── Constants ─────────────────────────────────────────────────────────────────

POLE_LABELS = {
    "secretariat": "Secrétariat",
    "tresorerie": "Trésorerie",
    "rh_event": "RH & Événements",
    "communication": "Communication",
    "etude": "Étude",
    "qualite": "Qualité",
    "presidence": "Présidence",
}
POLES = frozenset(POLE_LABELS)

ROLE_LABELS = {
    "normal": "Membre",
    "responsable": "Responsable",
    "presidence": "Présidence",
}
MEMBER_ROLES = frozenset(ROLE_LABELS)


class Member(db.Model):
    """Dashboard member (profile + credentials)."""

    __tablename__ = "members"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(200), nullable=False, default="")
    role = db.Column(db.String(20), nullable=False, default="normal",
                     comment="normal | responsable | presidence")
    pole = db.Column(db.String(30), nullable=False, default="secretariat",
                     comment="secretariat | tresorerie | rh_event | communication | etude | qualite | presidence")
    avatar_url = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def can_manage_pole(self, pole: str) -> bool:
        """Presidence manages everything; a responsable manages their own pole."""
        if self.role == "presidence":
            return True
        return self.role == "responsable" and self.pole == pole

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "role_label": ROLE_LABELS.get(self.role, self.role),
            "pole": self.pole,
            "pole_label": POLE_LABELS.get(self.pole, self.pole),
            "avatar_url": self.avatar_url,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Member #{self.id} {self.email} {self.role}/{self.pole}>"
