"""
Unit tests for the card state machine.

Tests:
- Learning phase (new/learning) for every grade
- Review phase (review/relearning) for every grade
- Clamping at the top of both ladders
- Rejection of unknown states and out-of-range grades
"""

from datetime import timedelta

import pytest

from learn_tutor.db.models import CardState, Grade
from learn_tutor.study.exceptions import InvalidCardStateError, InvalidGradeError
from learn_tutor.study.scheduler import parse_grade, parse_state, transition

EASE = 2.5


class TestLearningPhase:
    """new and learning cards walk the minutes table."""

    def test_good_twice_from_new_graduates(self, now):
        first = transition("new", 0, EASE, Grade.GOOD, now)
        assert first.card_state == CardState.LEARNING
        assert first.step_index == 1
        assert first.interval_days == 0
        assert first.due_date == now + timedelta(minutes=10)

        second = transition(first.card_state, first.step_index, EASE, Grade.GOOD, now)
        assert second.card_state == CardState.REVIEW
        assert second.step_index == 1
        assert second.interval_days == 1
        assert second.due_date == now + timedelta(days=1)

    def test_easy_on_new_skips_learning(self, now):
        result = transition("new", 0, EASE, Grade.EASY, now)
        assert result.card_state == CardState.REVIEW
        assert result.step_index == 2
        assert result.interval_days == 4
        assert result.due_date == now + timedelta(days=4)

    def test_again_restarts_learning(self, now):
        result = transition("learning", 1, EASE, Grade.AGAIN, now)
        assert result.card_state == CardState.LEARNING
        assert result.step_index == 0
        assert result.interval_days == 0
        assert result.due_date == now + timedelta(minutes=1)

    def test_hard_repeats_current_step(self, now):
        result = transition("learning", 1, EASE, Grade.HARD, now)
        assert result.card_state == CardState.LEARNING
        assert result.step_index == 1
        assert result.interval_days == 0
        assert result.due_date == now + timedelta(minutes=10)

    def test_hard_on_new_uses_first_step(self, now):
        result = transition("new", 0, EASE, Grade.HARD, now)
        assert result.card_state == CardState.LEARNING
        assert result.due_date == now + timedelta(minutes=1)

    def test_hard_past_top_reads_clamped_delay(self, now):
        result = transition("learning", 4, EASE, Grade.HARD, now)
        assert result.step_index == 4
        assert result.due_date == now + timedelta(minutes=10)

    def test_hard_in_learning_has_no_day_floor(self, now):
        result = transition("learning", 0, EASE, Grade.HARD, now)
        assert result.due_date - now < timedelta(days=1)

    def test_new_behaves_like_learning_at_step_zero(self, now):
        for grade in Grade:
            assert transition("new", 0, EASE, grade, now) == transition(
                "learning", 0, EASE, grade, now
            )


class TestReviewPhase:
    """review and relearning cards walk the days table."""

    def test_again_lapses_to_relearning(self, now):
        result = transition("review", 4, EASE, Grade.AGAIN, now)
        assert result.card_state == CardState.RELEARNING
        assert result.step_index == 0
        assert result.interval_days == 0
        assert result.due_date == now + timedelta(minutes=10)

    def test_hard_holds_step(self, now):
        result = transition("review", 3, EASE, Grade.HARD, now)
        assert result.card_state == CardState.REVIEW
        assert result.step_index == 3
        assert result.interval_days == 10
        assert result.due_date == now + timedelta(days=10)

    def test_hard_at_step_zero_is_pushed_one_day(self, now):
        result = transition("relearning", 0, EASE, Grade.HARD, now)
        assert result.card_state == CardState.REVIEW
        assert result.interval_days == 0
        assert result.due_date == now + timedelta(days=1)

    def test_good_advances_one_step(self, now):
        result = transition("review", 2, EASE, Grade.GOOD, now)
        assert result.card_state == CardState.REVIEW
        assert result.step_index == 3
        assert result.interval_days == 10
        assert result.due_date == now + timedelta(days=10)

    def test_easy_advances_two_steps(self, now):
        result = transition("review", 2, EASE, Grade.EASY, now)
        assert result.step_index == 4
        assert result.interval_days == 25
        assert result.due_date == now + timedelta(days=25)

    def test_good_from_relearning_returns_to_review(self, now):
        result = transition("relearning", 0, EASE, Grade.GOOD, now)
        assert result.card_state == CardState.REVIEW
        assert result.step_index == 1
        assert result.interval_days == 1

    def test_good_at_max_step_clamps(self, now):
        result = transition("review", 7, EASE, Grade.GOOD, now)
        assert result.step_index == 7
        assert result.interval_days == 365
        assert result.due_date == now + timedelta(days=365)

    def test_easy_near_top_clamps(self, now):
        result = transition("review", 6, EASE, Grade.EASY, now)
        assert result.step_index == 7
        assert result.interval_days == 365

    def test_hard_past_top_clamps(self, now):
        result = transition("review", 12, EASE, Grade.HARD, now)
        assert result.step_index == 7
        assert result.interval_days == 365


class TestPassthroughAndValidation:
    @pytest.mark.parametrize("state", ["new", "learning", "review", "relearning"])
    @pytest.mark.parametrize("grade", list(Grade))
    def test_ease_factor_is_untouched(self, now, state, grade):
        assert transition(state, 1, 1.3, grade, now).ease_factor == 1.3

    def test_accepts_enum_state(self, now):
        result = transition(CardState.REVIEW, 1, EASE, 2, now)
        assert result.step_index == 2

    @pytest.mark.parametrize("state", ["suspended", "", "NEW", None])
    def test_unknown_state_is_fatal(self, now, state):
        with pytest.raises(InvalidCardStateError, match="Unknown card state"):
            transition(state, 0, EASE, Grade.GOOD, now)

    @pytest.mark.parametrize("grade", [-1, 4, 2.0, "2", True, None])
    def test_invalid_grade_rejected(self, now, grade):
        with pytest.raises(InvalidGradeError):
            transition("review", 0, EASE, grade, now)

    def test_parse_state_reports_card(self):
        with pytest.raises(InvalidCardStateError) as exc_info:
            parse_state("graduated", card_id=9)
        assert exc_info.value.card_id == 9
        assert "card 9" in str(exc_info.value)

    def test_parse_grade_returns_enum(self):
        assert parse_grade(3) is Grade.EASY
