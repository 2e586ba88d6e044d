"""Tests for booking completion evaluation."""

from models.booking import Booking, Guest
from models.template import Question, QuestionDependency
from services.completion import evaluate_completion, is_booking_complete, required_questions
from utils.question_keys import QUESTION_KEYS


class TestEvaluateCompletion:
    """Completion against the seeded booking form."""

    def test_booking_without_sections_is_incomplete(self, db):
        guest = Guest(first_name="No", last_name="Sections")
        db.add(guest)
        db.flush()
        booking = Booking(guest_id=guest.id)
        db.add(booking)
        db.commit()

        result = evaluate_completion(db, booking.uuid)
        assert result.complete is False
        assert result.missing_question_ids == []

    def test_unknown_booking_is_incomplete(self, db):
        assert is_booking_complete(db, "does-not-exist") is False

    def test_fresh_booking_lists_required_questions_as_missing(self, form):
        result = evaluate_completion(form.db, form.booking.uuid)
        assert result.complete is False
        assert set(result.missing_question_ids) == {
            form.q["dates"].id,
            form.q["rooms"].id,
            form.q["adults"].id,
            form.q["funder"].id,
        }

    def test_all_required_answers_complete_the_booking(self, form):
        form.answer_all_required()
        assert is_booking_complete(form.db, form.booking.uuid) is True

    def test_dependent_question_required_once_dependency_met(self, form):
        form.answer_all_required(funder="NDIS")
        result = evaluate_completion(form.db, form.booking.uuid)
        assert result.complete is False
        assert result.missing_question_ids == [form.q["coordinator"].id]

        form.answer("coordinator", "coordinator@example.com")
        assert is_booking_complete(form.db, form.booking.uuid) is True

    def test_empty_json_answer_counts_as_unanswered(self, form):
        form.answer("dates", "2025-03-01 - 2025-03-05", commit=False)
        form.answer("rooms", [], commit=False)
        form.answer("adults", "2", commit=False)
        form.answer("funder", "Private")

        result = evaluate_completion(form.db, form.booking.uuid)
        assert result.missing_question_ids == [form.q["rooms"].id]

    def test_missing_questions_carry_display_text(self, form):
        form.answer("dates", "2025-03-01 - 2025-03-05", commit=False)
        form.answer("rooms", [{"name": "Deluxe Suite"}], commit=False)
        form.answer("funder", "Private")

        result = evaluate_completion(form.db, form.booking.uuid)
        assert result.to_dict()["missing_questions"] == [form.q["adults"].question]

    def _require_full_package(self, form):
        package = form._question(
            "package", form.funding, "Please select your accommodation and assistance package below.",
            QUESTION_KEYS.ACCOMMODATION_PACKAGE_FULL, "radio", required=True,
        )
        form.db.commit()
        return package

    def test_ndis_funded_stay_skips_the_full_package_question(self, form):
        self._require_full_package(form)
        form.answer_all_required(funder="NDIS")
        form.answer("coordinator", "coordinator@example.com")

        result = evaluate_completion(form.db, form.booking.uuid)
        assert result.complete is True
        assert result.missing_question_ids == []

    def test_privately_funded_stay_must_pick_a_package(self, form):
        package = self._require_full_package(form)
        form.answer_all_required(funder="Private")

        result = evaluate_completion(form.db, form.booking.uuid)
        assert result.complete is False
        assert result.missing_question_ids == [package.id]


class TestRequiredQuestions:
    """Filtering rules applied before answers are checked."""

    def _question(self, qid, **kwargs):
        fields = {"type": "text", "required": True}
        fields.update(kwargs)
        q = Question(id=qid, question=f"Question {qid}", **fields)
        return q

    def test_unrequired_equipment_and_flagged_questions_are_excluded(self):
        questions = [
            self._question(1),
            self._question(2, required=False),
            self._question(3, type="equipment"),
            self._question(4, second_booking_only=True),
            self._question(5, ndis_only=True),
        ]
        assert [q.id for q in required_questions(questions, [])] == [1]

    def test_two_unmet_dependencies_leave_question_optional(self):
        question = self._question(10)
        question.dependencies = [
            QuestionDependency(question_id=10, dependence_id=1, answer="Yes"),
            QuestionDependency(question_id=10, dependence_id=2, answer="Yes"),
        ]
        assert required_questions([question], []) == []

    def test_any_met_dependency_makes_question_required(self, form):
        question = self._question(10)
        question.dependencies = [
            QuestionDependency(question_id=10, dependence_id=form.q["funder"].id, answer="NDIS"),
            QuestionDependency(question_id=10, dependence_id=form.q["pets"].id, answer="Yes"),
        ]
        qa = form.answer("pets", "Yes")
        assert required_questions([question], [qa]) == [question]

    def test_dependency_on_list_answer_matches_membership(self, form):
        question = self._question(10)
        question.dependencies = [
            QuestionDependency(question_id=10, dependence_id=form.q["health"].id, answer="Diabetes"),
        ]
        qa = form.answer("health", ["Epilepsy", "Diabetes"])
        assert required_questions([question], [qa]) == [question]
