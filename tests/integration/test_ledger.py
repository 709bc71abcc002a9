"""
Integration tests for the review ledger: atomic grade application,
compare-and-swap write-back, and session counters.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from learn_tutor.db.database import session_scope
from learn_tutor.db.models import Card, CardState, Grade, ReviewHistory, StudySession
from learn_tutor.study import ledger
from learn_tutor.study.exceptions import (
    CardNotFoundError,
    SessionClosedError,
    SessionNotFoundError,
    StaleCardStateError,
)
from learn_tutor.study.ledger import CardSnapshot, is_lapse, record_grade, write_back
from learn_tutor.study.scheduler import transition


def _history(session_factory, card_id):
    with session_factory() as db:
        return list(
            db.scalars(
                select(ReviewHistory)
                .where(ReviewHistory.card_id == card_id)
                .order_by(ReviewHistory.id)
            )
        )


def _card(session_factory, card_id):
    with session_factory() as db:
        return db.get(Card, card_id)


def _open_session(session_factory, now, status="active"):
    with session_factory() as db:
        row = StudySession(learner_id="default", started_at=now, status=status)
        db.add(row)
        db.commit()
        return row.id


class TestRecordGrade:
    def test_persists_transition_and_history(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(
            library["topic_a"], state="review", step_index=2, interval_days=4, due=now
        )

        with session_scope(session_factory) as db:
            result = record_grade(db, card_id, Grade.GOOD, now, elapsed_ms=4200)

        card = _card(session_factory, card_id)
        assert card.card_state == "review"
        assert card.step_index == 3
        assert card.interval_days == 10
        assert card.due_date == now + timedelta(days=10)
        assert card.due_date == result.due_date
        assert card.review_count == 1
        assert card.lapse_count == 0

        (entry,) = _history(session_factory, card_id)
        assert entry.grade == 2
        assert entry.previous_interval == 4
        assert entry.new_interval == 10
        assert entry.previous_ease == entry.new_ease == 2.5
        assert entry.time_taken_ms == 4200
        assert entry.reviewed_at == now
        assert entry.session_id is None

    def test_review_again_counts_a_lapse(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"], state="review", step_index=4, due=now)

        with session_scope(session_factory) as db:
            record_grade(db, card_id, Grade.AGAIN, now)

        card = _card(session_factory, card_id)
        assert card.card_state == "relearning"
        assert card.step_index == 0
        assert card.lapse_count == 1
        assert card.due_date == now + timedelta(minutes=10)

    def test_learning_again_is_not_a_lapse(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"], state="learning", step_index=1, due=now)

        with session_scope(session_factory) as db:
            record_grade(db, card_id, Grade.AGAIN, now)

        card = _card(session_factory, card_id)
        assert card.card_state == "learning"
        assert card.lapse_count == 0
        assert card.review_count == 1

    def test_missing_card(self, session_factory, library, now):
        with pytest.raises(CardNotFoundError):
            with session_scope(session_factory) as db:
                record_grade(db, 999, Grade.GOOD, now)

    def test_negative_elapsed_rejected(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"])
        with pytest.raises(ValueError):
            with session_scope(session_factory) as db:
                record_grade(db, card_id, Grade.GOOD, now, elapsed_ms=-1)
        assert _card(session_factory, card_id).review_count == 0


class TestSessionCounters:
    def test_counters_follow_grades(self, session_factory, library, make_cards, now):
        ids = make_cards(library["topic_a"], 3)
        session_id = _open_session(session_factory, now)

        for card_id, grade, elapsed in zip(
            ids, (Grade.GOOD, Grade.AGAIN, Grade.EASY), (1000, 2000, None)
        ):
            with session_scope(session_factory) as db:
                record_grade(db, card_id, grade, now, elapsed_ms=elapsed, session_id=session_id)

        with session_factory() as db:
            row = db.get(StudySession, session_id)
            assert row.cards_studied == 3
            assert row.cards_correct == 2
            assert row.total_time_ms == 3000
            assert row.accuracy == pytest.approx(2 / 3)
        assert _history(session_factory, ids[0])[0].session_id == session_id

    def test_closed_session_refuses_grades(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"])
        session_id = _open_session(session_factory, now, status="completed")

        with pytest.raises(SessionClosedError):
            with session_scope(session_factory) as db:
                record_grade(db, card_id, Grade.GOOD, now, session_id=session_id)

        assert _card(session_factory, card_id).card_state == "new"
        assert _history(session_factory, card_id) == []

    def test_unknown_session(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"])
        with pytest.raises(SessionNotFoundError):
            with session_scope(session_factory) as db:
                record_grade(db, card_id, Grade.GOOD, now, session_id=404)
        assert _history(session_factory, card_id) == []


class TestAtomicity:
    def test_failure_after_write_back_rolls_everything_back(
        self, session_factory, library, make_cards, now, monkeypatch
    ):
        (card_id,) = make_cards(library["topic_a"], state="review", step_index=3, due=now)
        session_id = _open_session(session_factory, now)

        def _explode(*args, **kwargs):
            raise RuntimeError("storage went away")

        monkeypatch.setattr(ledger, "apply_session_counters", _explode)

        with pytest.raises(RuntimeError):
            with session_scope(session_factory) as db:
                record_grade(db, card_id, Grade.GOOD, now, session_id=session_id)

        card = _card(session_factory, card_id)
        assert card.step_index == 3
        assert card.review_count == 0
        assert card.due_date == now
        assert _history(session_factory, card_id) == []
        with session_factory() as db:
            assert db.get(StudySession, session_id).cards_studied == 0


class TestCompareAndSwap:
    def test_stale_snapshot_is_refused(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"])
        stale = CardSnapshot(
            card_id=card_id,
            card_state=CardState.NEW,
            step_index=0,
            interval_days=0.0,
            ease_factor=2.5,
            review_count=0,
        )

        # Another writer grades the card first
        with session_scope(session_factory) as db:
            record_grade(db, card_id, Grade.GOOD, now)

        result = transition(stale.card_state, stale.step_index, stale.ease_factor, Grade.EASY, now)
        with pytest.raises(StaleCardStateError) as exc_info:
            with session_scope(session_factory) as db:
                write_back(db, stale, result, is_lapse(stale.card_state, Grade.EASY), now)

        assert exc_info.value.retryable is True
        card = _card(session_factory, card_id)
        assert card.card_state == "learning"
        assert card.step_index == 1
        assert card.review_count == 1

    def test_interval_changed_since_read_is_refused(
        self, study_service, session_factory, library, make_cards, now
    ):
        (card_id,) = make_cards(
            library["topic_a"], state="review", step_index=2, interval_days=4, due=now
        )
        with session_factory() as db:
            before = CardSnapshot.read(db.get(Card, card_id))

        # A manual reschedule lands between the read and the write
        study_service.reschedule_card(card_id, interval_days=3, now=now)

        result = transition(
            before.card_state, before.step_index, before.ease_factor, Grade.GOOD, now
        )
        with pytest.raises(StaleCardStateError):
            with session_scope(session_factory) as db:
                write_back(db, before, result, False, now)

        card = _card(session_factory, card_id)
        assert card.interval_days == 3
        assert card.step_index == 2
        assert card.review_count == 0

    def test_replayed_grade_is_refused(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"])

        with session_scope(session_factory) as db:
            record_grade(db, card_id, Grade.GOOD, now, expected_review_count=0)

        with pytest.raises(StaleCardStateError):
            with session_scope(session_factory) as db:
                record_grade(db, card_id, Grade.GOOD, now, expected_review_count=0)

        assert _card(session_factory, card_id).review_count == 1
        assert len(_history(session_factory, card_id)) == 1

    def test_one_history_row_per_applied_grade(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"])
        for grade in (Grade.GOOD, Grade.GOOD, Grade.HARD, Grade.AGAIN):
            with session_scope(session_factory) as db:
                record_grade(db, card_id, grade, now)

        with session_factory() as db:
            count = db.scalar(
                select(func.count(ReviewHistory.id)).where(ReviewHistory.card_id == card_id)
            )
        assert count == 4
        card = _card(session_factory, card_id)
        assert card.review_count == 4
        assert card.lapse_count == 1
