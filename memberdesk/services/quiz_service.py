"""
Quiz Service — the optional terminal quiz of a formation.

Business context:
    A formation has at most one quiz. A learner may take it once, after
    completing every step. The attempt is immutable: its score is computed
    at submission and never recomputed.

    Each answer row snapshots the question text, the chosen choice text,
    the correct choice text and the correctness at submission time. Quiz
    authoring is replace-all, so after an edit the answer's foreign keys
    may be NULL; reviews read the snapshot only.

Invariants:
    - one Quiz per Formation (unique formation_id)
    - each question has 2..4 choices and exactly one correct choice
    - one QuizAttempt per (quiz, enrollment) (read-then-guard + unique constraint)
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from memberdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from memberdesk.models import db
from memberdesk.models.formation import Formation, Quiz, QuizAnswer, QuizAttempt, QuizChoice, QuizQuestion
from memberdesk.services import formation_service
from memberdesk.utils.helpers import commit_or_rollback

logger = logging.getLogger(__name__)

MIN_CHOICES = 2
MAX_CHOICES = 4

QUIZ_NOT_ELIGIBLE_MESSAGE = "Termine toutes les étapes avant de passer le quiz."
QUIZ_ALREADY_TAKEN_MESSAGE = "Tu as déjà passé ce quiz."


def get_quiz(formation: Formation) -> Quiz:
    if formation.quiz is None:
        raise NotFoundError(resource="Quiz", resource_id=formation.id)
    return formation.quiz


def find_attempt(quiz: Quiz, enrollment_id: int) -> QuizAttempt | None:
    return db.session.execute(
        select(QuizAttempt).where(
            QuizAttempt.quiz_id == quiz.id,
            QuizAttempt.enrollment_id == enrollment_id,
        )
    ).scalar_one_or_none()


# ── Authoring ─────────────────────────────────────────────────────────────────


def _validate_questions(questions) -> list[dict]:
    if not isinstance(questions, list) or not questions:
        raise ValidationError("Le quiz doit contenir au moins une question.",
                              details={"questions": "required"})
    for qi, question in enumerate(questions):
        where = {"question": qi}
        if not isinstance(question, dict) or not str(question.get("text") or "").strip():
            raise ValidationError("Chaque question doit avoir un intitulé.", details=where)
        choices = question.get("choices")
        if not isinstance(choices, list) or not MIN_CHOICES <= len(choices) <= MAX_CHOICES:
            raise ValidationError(
                f"Chaque question doit avoir entre {MIN_CHOICES} et {MAX_CHOICES} réponses.",
                details=where,
            )
        for choice in choices:
            if not isinstance(choice, dict) or not str(choice.get("text") or "").strip():
                raise ValidationError("Chaque réponse doit avoir un texte.", details=where)
        if sum(1 for c in choices if c.get("is_correct")) != 1:
            raise ValidationError("Chaque question doit avoir exactement une bonne réponse.",
                                  details=where)
    return questions


def save_quiz(member, formation: Formation, questions) -> Quiz:
    """Create the quiz or replace all of its questions, in one transaction."""
    formation_service.require_manager(member, formation)
    questions = _validate_questions(questions)

    quiz = formation.quiz
    try:
        if quiz is None:
            quiz = Quiz(formation_id=formation.id)
            db.session.add(quiz)
        else:
            quiz.questions.clear()
        db.session.flush()

        for qi, q in enumerate(questions):
            question = QuizQuestion(text=q["text"].strip(), position=qi)
            for ci, c in enumerate(q["choices"]):
                question.choices.append(QuizChoice(
                    text=c["text"].strip(), is_correct=bool(c.get("is_correct")), position=ci,
                ))
            quiz.questions.append(question)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Quiz saved for formation %s (%d questions)", formation.id, len(questions),
                extra={"member_id": member.id, "formation_id": formation.id})
    return quiz


def delete_quiz(member, formation: Formation) -> None:
    formation_service.require_manager(member, formation)
    db.session.delete(get_quiz(formation))
    commit_or_rollback()


# ── Learner side ──────────────────────────────────────────────────────────────


def score_answers(quiz: Quiz, answers: dict) -> tuple[int, int]:
    """Count questions whose chosen choice is correct. Returns (score, total).

    ``answers`` maps question id → choice id; missing answers score 0.
    """
    score = 0
    for question in quiz.questions:
        choice_id = answers.get(question.id)
        correct = question.correct_choice
        if correct is not None and choice_id == correct.id:
            score += 1
    return score, len(quiz.questions)


def _normalise_answers(raw) -> dict[int, int]:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        pairs = raw.items()
    elif isinstance(raw, list):
        pairs = ((a.get("question_id"), a.get("choice_id")) for a in raw if isinstance(a, dict))
    else:
        raise ValidationError("Réponses invalides.", details={"answers": "invalid"})
    answers = {}
    for question_id, choice_id in pairs:
        try:
            answers[int(question_id)] = int(choice_id) if choice_id is not None else None
        except (TypeError, ValueError) as exc:
            raise ValidationError("Réponses invalides.", details={"answers": "invalid"}) from exc
    return answers


def submit_attempt(member, formation: Formation, raw_answers) -> QuizAttempt:
    """Score and store the member's single attempt.

    Raises:
        ValidationError(code="quiz_not_eligible"): formation not completed.
        ConflictError: an attempt already exists.
    """
    quiz = get_quiz(formation)
    enrollment = formation_service.require_enrollment(member, formation)
    if not formation_service.is_formation_complete(formation, enrollment):
        raise ValidationError(QUIZ_NOT_ELIGIBLE_MESSAGE, code="quiz_not_eligible")
    if find_attempt(quiz, enrollment.id) is not None:
        raise ConflictError("QuizAttempt", "enrollment_id", enrollment.id,
                            message=QUIZ_ALREADY_TAKEN_MESSAGE)

    answers = _normalise_answers(raw_answers)
    score, total = score_answers(quiz, answers)

    attempt = QuizAttempt(quiz_id=quiz.id, enrollment_id=enrollment.id, score=score, total=total)
    for question in quiz.questions:
        chosen = next((c for c in question.choices if c.id == answers.get(question.id)), None)
        correct = question.correct_choice
        attempt.answers.append(QuizAnswer(
            question_id=question.id,
            choice_id=chosen.id if chosen else None,
            position=question.position,
            question_text=question.text,
            choice_text=chosen.text if chosen else None,
            correct_choice_text=correct.text if correct else None,
            is_correct=chosen is not None and chosen.is_correct,
        ))
    db.session.add(attempt)
    try:
        commit_or_rollback()
    except IntegrityError as exc:
        raise ConflictError("QuizAttempt", "enrollment_id", enrollment.id,
                            message=QUIZ_ALREADY_TAKEN_MESSAGE) from exc

    logger.info("Quiz attempt %s: %d/%d", attempt.id, score, total,
                extra={"member_id": member.id, "formation_id": formation.id})
    return attempt


def get_attempt_review(member, formation: Formation) -> dict | None:
    """Score and per-question selected vs correct choice, from the snapshots."""
    quiz = get_quiz(formation)
    enrollment = formation_service.require_enrollment(member, formation)
    attempt = find_attempt(quiz, enrollment.id)
    if attempt is None:
        return None
    return attempt.to_dict(include_answers=True)


def quiz_view(member, formation: Formation) -> dict:
    """Quiz for display: managers see correct answers; learners see their status."""
    quiz = get_quiz(formation)
    manager = formation_service.can_manage(member, formation)
    view = quiz.to_dict(reveal_answers=manager)
    enrollment = formation_service.find_enrollment(member.id, formation.id)
    if enrollment is not None:
        attempt = find_attempt(quiz, enrollment.id)
        view["eligible"] = (attempt is None
                            and formation_service.is_formation_complete(formation, enrollment))
        view["attempt"] = attempt.to_dict() if attempt else None
    else:
        view["eligible"] = False
        view["attempt"] = None
    return view
