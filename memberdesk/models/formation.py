"""
Formation (onboarding course) domain models.

Models:
    - Formation: a named learning unit owned by a pole
    - FormationStep: one ordered unit of a formation (gated on its predecessor)
    - StepDocument: reference file attached to a step by its author
    - Enrollment: binding of one member to one formation (unique pair)
    - StepProgress: per (enrollment, step) completion record (unique pair)
    - StepSubmission: file evidence uploaded by the learner (many per pair)
    - Quiz / QuizQuestion / QuizChoice: optional terminal quiz (one per formation)
    - QuizAttempt / QuizAnswer: the single, immutable attempt of an enrollment

Deleting a Formation cascades through every table above.

QuizAnswer keeps a text snapshot of the question, the chosen choice and the
correct choice. Quiz authoring replaces all questions, so the FK columns may
be nulled later; the review screen reads the snapshot only.
"""

from datetime import datetime, timezone

from memberdesk.models import db


def _utcnow():
    return datetime.now(timezone.utc)


# ── Formation ─────────────────────────────────────────────────────────────────

class Formation(db.Model):
    __tablename__ = "formations"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    pole = db.Column(db.String(30), nullable=False, index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    steps = db.relationship(
        "FormationStep", back_populates="formation",
        order_by="FormationStep.order_index",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    enrollments = db.relationship(
        "Enrollment", back_populates="formation",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    quiz = db.relationship(
        "Quiz", back_populates="formation", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, include_steps=False):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "pole": self.pole,
            "created_by": self.created_by,
            "step_count": len(self.steps),
            "has_quiz": self.quiz is not None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            d["steps"] = [s.to_dict() for s in self.steps]
        return d

    def __repr__(self):
        return f"<Formation #{self.id} {self.title}>"


# ── FormationStep ─────────────────────────────────────────────────────────────

class FormationStep(db.Model):
    __tablename__ = "formation_steps"

    id = db.Column(db.Integer, primary_key=True)
    formation_id = db.Column(
        db.Integer, db.ForeignKey("formations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True, comment="Long-form step content")
    video_url = db.Column(db.String(500), nullable=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    requires_file = db.Column(db.Boolean, nullable=False, default=False)
    requires_text = db.Column(db.Boolean, nullable=False, default=False)

    formation = db.relationship("Formation", back_populates="steps")
    documents = db.relationship(
        "StepDocument", back_populates="step", order_by="StepDocument.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    progress_rows = db.relationship(
        "StepProgress", back_populates="step",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    submissions = db.relationship(
        "StepSubmission", back_populates="step",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("formation_id", "order_index", name="uq_step_formation_order"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "formation_id": self.formation_id,
            "title": self.title,
            "description": self.description,
            "video_url": self.video_url,
            "order_index": self.order_index,
            "requires_file": self.requires_file,
            "requires_text": self.requires_text,
            "documents": [d.to_dict() for d in self.documents],
        }

    def __repr__(self):
        return f"<FormationStep #{self.id} {self.formation_id}:{self.order_index}>"


class StepDocument(db.Model):
    __tablename__ = "step_documents"

    id = db.Column(db.Integer, primary_key=True)
    step_id = db.Column(
        db.Integer, db.ForeignKey("formation_steps.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    file_name = db.Column(db.String(255), nullable=False)
    storage_path = db.Column(db.String(500), nullable=False)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("members.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    step = db.relationship("FormationStep", back_populates="documents")

    def to_dict(self):
        return {
            "id": self.id,
            "step_id": self.step_id,
            "file_name": self.file_name,
            "storage_path": self.storage_path,
        }


# ── Enrollment & progress ─────────────────────────────────────────────────────

class Enrollment(db.Model):
    __tablename__ = "enrollments"

    id = db.Column(db.Integer, primary_key=True)
    formation_id = db.Column(
        db.Integer, db.ForeignKey("formations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    member_id = db.Column(
        db.Integer, db.ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    formation = db.relationship("Formation", back_populates="enrollments")
    progress = db.relationship(
        "StepProgress", back_populates="enrollment",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    submissions = db.relationship(
        "StepSubmission", back_populates="enrollment", order_by="StepSubmission.id",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    quiz_attempt = db.relationship(
        "QuizAttempt", back_populates="enrollment", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("member_id", "formation_id", name="uq_enrollment_member_formation"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "formation_id": self.formation_id,
            "member_id": self.member_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class StepProgress(db.Model):
    __tablename__ = "step_progress"

    id = db.Column(db.Integer, primary_key=True)
    enrollment_id = db.Column(
        db.Integer, db.ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    step_id = db.Column(
        db.Integer, db.ForeignKey("formation_steps.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    text_answer = db.Column(db.Text, nullable=True)

    enrollment = db.relationship("Enrollment", back_populates="progress")
    step = db.relationship("FormationStep", back_populates="progress_rows")

    __table_args__ = (
        db.UniqueConstraint("enrollment_id", "step_id", name="uq_progress_enrollment_step"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "enrollment_id": self.enrollment_id,
            "step_id": self.step_id,
            "completed": self.completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "text_answer": self.text_answer,
        }


class StepSubmission(db.Model):
    __tablename__ = "step_submissions"

    id = db.Column(db.Integer, primary_key=True)
    enrollment_id = db.Column(
        db.Integer, db.ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    step_id = db.Column(
        db.Integer, db.ForeignKey("formation_steps.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    file_name = db.Column(db.String(255), nullable=False)
    storage_path = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    enrollment = db.relationship("Enrollment", back_populates="submissions")
    step = db.relationship("FormationStep", back_populates="submissions")

    def to_dict(self):
        return {
            "id": self.id,
            "enrollment_id": self.enrollment_id,
            "step_id": self.step_id,
            "file_name": self.file_name,
            "storage_path": self.storage_path,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ── Quiz ──────────────────────────────────────────────────────────────────────

class Quiz(db.Model):
    __tablename__ = "quizzes"

    id = db.Column(db.Integer, primary_key=True)
    formation_id = db.Column(
        db.Integer, db.ForeignKey("formations.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    formation = db.relationship("Formation", back_populates="quiz")
    questions = db.relationship(
        "QuizQuestion", back_populates="quiz", order_by="QuizQuestion.position",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    attempts = db.relationship(
        "QuizAttempt", back_populates="quiz",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self, reveal_answers=False):
        return {
            "id": self.id,
            "formation_id": self.formation_id,
            "questions": [q.to_dict(reveal_answers=reveal_answers) for q in self.questions],
        }


class QuizQuestion(db.Model):
    __tablename__ = "quiz_questions"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    quiz = db.relationship("Quiz", back_populates="questions")
    choices = db.relationship(
        "QuizChoice", back_populates="question", order_by="QuizChoice.position",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def correct_choice(self):
        return next((c for c in self.choices if c.is_correct), None)

    def to_dict(self, reveal_answers=False):
        return {
            "id": self.id,
            "text": self.text,
            "position": self.position,
            "choices": [c.to_dict(reveal_answers=reveal_answers) for c in self.choices],
        }


class QuizChoice(db.Model):
    __tablename__ = "quiz_choices"

    id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(
        db.Integer, db.ForeignKey("quiz_questions.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    question = db.relationship("QuizQuestion", back_populates="choices")

    def to_dict(self, reveal_answers=False):
        d = {"id": self.id, "text": self.text, "position": self.position}
        if reveal_answers:
            d["is_correct"] = self.is_correct
        return d


class QuizAttempt(db.Model):
    """Immutable once created: one per (quiz, enrollment)."""

    __tablename__ = "quiz_attempts"

    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    enrollment_id = db.Column(
        db.Integer, db.ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    score = db.Column(db.Integer, nullable=False, default=0)
    total = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    quiz = db.relationship("Quiz", back_populates="attempts")
    enrollment = db.relationship("Enrollment", back_populates="quiz_attempt")
    answers = db.relationship(
        "QuizAnswer", back_populates="attempt", order_by="QuizAnswer.position",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    __table_args__ = (
        db.UniqueConstraint("quiz_id", "enrollment_id", name="uq_attempt_quiz_enrollment"),
    )

    def to_dict(self, include_answers=False):
        d = {
            "id": self.id,
            "quiz_id": self.quiz_id,
            "enrollment_id": self.enrollment_id,
            "score": self.score,
            "total": self.total,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_answers:
            d["answers"] = [a.to_dict() for a in self.answers]
        return d


class QuizAnswer(db.Model):
    __tablename__ = "quiz_answers"

    id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(
        db.Integer, db.ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    question_id = db.Column(db.Integer, db.ForeignKey("quiz_questions.id", ondelete="SET NULL"), nullable=True)
    choice_id = db.Column(db.Integer, db.ForeignKey("quiz_choices.id", ondelete="SET NULL"), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Snapshot captured at attempt time; survives quiz re-authoring
    question_text = db.Column(db.Text, nullable=False)
    choice_text = db.Column(db.Text, nullable=True, comment="NULL when the question was left unanswered")
    correct_choice_text = db.Column(db.Text, nullable=True)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

    attempt = db.relationship("QuizAttempt", back_populates="answers")

    def to_dict(self):
        return {
            "question_id": self.question_id,
            "choice_id": self.choice_id,
            "question": self.question_text,
            "selected": self.choice_text,
            "correct": self.correct_choice_text,
            "is_correct": self.is_correct,
        }
