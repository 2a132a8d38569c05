"""
Tests — Quiz engine (service layer).

Covers:
    - authoring validation and replace-all semantics
    - eligibility (every step completed)
    - scoring, single attempt, answer snapshots surviving re-authoring
"""

import pytest

from memberdesk.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from memberdesk.models import db
from memberdesk.models.formation import Formation, QuizAnswer, QuizAttempt, QuizChoice, QuizQuestion
from memberdesk.services import formation_service as fs
from memberdesk.services import quiz_service as qs


def _question(text, correct_index, labels=("A", "B", "C")):
    return {
        "text": text,
        "choices": [{"text": label, "is_correct": i == correct_index} for i, label in enumerate(labels)],
    }


QUESTIONS = [_question("Capitale de la Bretagne ?", 1, ("Brest", "Rennes", "Quimper")),
             _question("Année de création ?", 0, ("2012", "2015", "2020"))]


@pytest.fixture()
def formation(responsable):
    return fs.create_formation(responsable, "etude", {"title": "Culture Capisen",
                                                      "steps": [{"title": "Lire"}]})


@pytest.fixture()
def quiz(formation, responsable):
    return qs.save_quiz(responsable, formation, QUESTIONS)


@pytest.fixture()
def learner(formation, member):
    fs.enroll(member, formation)
    fs.complete_step(member, formation, formation.steps[0])
    return member


def _answers(quiz, picks):
    """picks: index of the chosen choice per question (None = unanswered)."""
    answers = {}
    for question, pick in zip(quiz.questions, picks):
        if pick is not None:
            answers[question.id] = question.choices[pick].id
    return answers


class TestAuthoring:
    def test_save_quiz(self, quiz):
        assert [q.text for q in quiz.questions] == ["Capitale de la Bretagne ?", "Année de création ?"]
        assert [c.text for c in quiz.questions[0].choices] == ["Brest", "Rennes", "Quimper"]
        assert quiz.questions[0].correct_choice.text == "Rennes"

    @pytest.mark.parametrize("questions", [
        [],
        None,
        [{"text": "", "choices": [{"text": "a", "is_correct": True}, {"text": "b"}]}],
        [{"text": "Q", "choices": [{"text": "a", "is_correct": True}]}],
        [{"text": "Q", "choices": [{"text": c, "is_correct": c == "a"} for c in "abcde"]}],
        [{"text": "Q", "choices": [{"text": "a"}, {"text": "b"}]}],
        [{"text": "Q", "choices": [{"text": "a", "is_correct": True}, {"text": "b", "is_correct": True}]}],
        [{"text": "Q", "choices": [{"text": "a", "is_correct": True}, {"text": " "}]}],
    ])
    def test_invalid_questions(self, formation, responsable, questions):
        with pytest.raises(ValidationError):
            qs.save_quiz(responsable, formation, questions)
        assert db.session.query(QuizQuestion).count() == 0

    def test_replace_all(self, quiz, formation, responsable):
        qs.save_quiz(responsable, formation, [_question("Nouvelle ?", 0, ("x", "y"))])
        assert db.session.query(QuizQuestion).count() == 1
        assert db.session.query(QuizChoice).count() == 2

    def test_invalid_replacement_keeps_previous_quiz(self, quiz, formation, responsable):
        with pytest.raises(ValidationError):
            qs.save_quiz(responsable, formation, [{"text": "Q", "choices": []}])
        assert db.session.query(QuizQuestion).count() == 2

    def test_learner_cannot_author(self, formation, member):
        with pytest.raises(PermissionDeniedError):
            qs.save_quiz(member, formation, QUESTIONS)

    def test_delete_quiz(self, quiz, formation, responsable):
        qs.delete_quiz(responsable, formation)
        with pytest.raises(NotFoundError):
            qs.get_quiz(db.session.get(Formation, formation.id))


class TestScoring:
    def test_all_correct(self, quiz, formation, learner):
        attempt = qs.submit_attempt(learner, formation, _answers(quiz, [1, 0]))
        assert (attempt.score, attempt.total) == (2, 2)

    def test_one_wrong(self, quiz, formation, learner):
        attempt = qs.submit_attempt(learner, formation, _answers(quiz, [1, 2]))
        assert (attempt.score, attempt.total) == (1, 2)

    def test_no_answers(self, quiz, formation, learner):
        attempt = qs.submit_attempt(learner, formation, {})
        assert (attempt.score, attempt.total) == (0, 2)
        assert [a.choice_text for a in attempt.answers] == [None, None]

    def test_score_answers_is_pure(self, quiz):
        answers = _answers(quiz, [1, None])
        assert qs.score_answers(quiz, answers) == (1, 2)
        assert qs.score_answers(quiz, answers) == (1, 2)

    def test_list_payload_accepted(self, quiz, formation, learner):
        q0, q1 = quiz.questions
        attempt = qs.submit_attempt(learner, formation, [
            {"question_id": q0.id, "choice_id": q0.choices[1].id},
            {"question_id": str(q1.id), "choice_id": str(q1.choices[0].id)},
        ])
        assert attempt.score == 2

    def test_garbage_payload(self, quiz, formation, learner):
        with pytest.raises(ValidationError):
            qs.submit_attempt(learner, formation, "A,B")


class TestEligibilityAndImmutability:
    def test_not_eligible_before_completion(self, quiz, formation, member):
        fs.enroll(member, formation)
        with pytest.raises(ValidationError) as exc:
            qs.submit_attempt(member, formation, {})
        assert exc.value.code == "quiz_not_eligible"
        assert qs.quiz_view(member, formation)["eligible"] is False

    def test_single_attempt(self, quiz, formation, learner):
        qs.submit_attempt(learner, formation, _answers(quiz, [1, 0]))
        with pytest.raises(ConflictError):
            qs.submit_attempt(learner, formation, _answers(quiz, [0, 0]))
        assert db.session.query(QuizAttempt).count() == 1

    def test_quiz_view(self, quiz, formation, learner, responsable):
        learner_view = qs.quiz_view(learner, formation)
        assert learner_view["eligible"] is True
        assert "is_correct" not in learner_view["questions"][0]["choices"][0]
        manager_view = qs.quiz_view(responsable, formation)
        assert manager_view["questions"][0]["choices"][1]["is_correct"] is True

    def test_review_survives_reauthoring(self, quiz, formation, learner, responsable):
        qs.submit_attempt(learner, formation, _answers(quiz, [1, 2]))
        qs.save_quiz(responsable, formation, [_question("Autre ?", 0, ("x", "y"))])
        db.session.expire_all()

        review = qs.get_attempt_review(learner, db.session.get(Formation, formation.id))
        assert (review["score"], review["total"]) == (1, 2)
        first, second = review["answers"]
        assert first == {
            "question_id": None,
            "choice_id": None,
            "question": "Capitale de la Bretagne ?",
            "selected": "Rennes",
            "correct": "Rennes",
            "is_correct": True,
        }
        assert second["selected"] == "2020"
        assert second["correct"] == "2012"
        assert second["is_correct"] is False
        assert db.session.query(QuizAnswer).count() == 2

    def test_no_review_before_attempt(self, quiz, formation, learner):
        assert qs.get_attempt_review(learner, formation) is None
