"""
Integration tests for tiered queue assembly against SQLite.
"""

from datetime import timedelta

from learn_tutor.study.queue_builder import StudyScope, assemble_queue


def _queue(session_factory, scope, limit, now):
    with session_factory() as db:
        return [(c.id, c.card_state) for c in assemble_queue(db, scope, limit, now)]


class TestTierOrdering:
    def test_learning_then_review_then_new(self, session_factory, library, make_cards, now):
        topic = library["topic_a"]
        new_ids = make_cards(topic, 50)
        review_ids = make_cards(topic, 5, state="review", due=now - timedelta(days=1), step_index=2)
        learning_ids = make_cards(
            topic, 3, state="learning", due=now - timedelta(minutes=5), step_index=1
        )

        queue = _queue(session_factory, None, 20, now)

        assert len(queue) == 20
        assert [cid for cid, _ in queue[:3]] == learning_ids
        assert [cid for cid, _ in queue[3:8]] == review_ids
        assert [cid for cid, _ in queue[8:]] == new_ids[:12]

    def test_relearning_shares_the_first_tier(self, session_factory, library, make_cards, now):
        topic = library["topic_a"]
        (review_id,) = make_cards(topic, state="review", due=now - timedelta(days=3))
        (relearn_id,) = make_cards(topic, state="relearning", due=now - timedelta(minutes=1))

        queue = _queue(session_factory, None, 10, now)

        assert [cid for cid, _ in queue] == [relearn_id, review_id]

    def test_due_tiers_ordered_oldest_first(self, session_factory, library, make_cards, now):
        topic = library["topic_a"]
        (recent,) = make_cards(topic, state="review", due=now - timedelta(hours=1))
        (overdue,) = make_cards(topic, state="review", due=now - timedelta(days=10))

        queue = _queue(session_factory, None, 10, now)

        assert [cid for cid, _ in queue] == [overdue, recent]

    def test_learning_cards_fill_the_budget(self, session_factory, library, make_cards, now):
        topic = library["topic_a"]
        learning_ids = make_cards(topic, 4, state="learning", due=now - timedelta(minutes=1))
        make_cards(topic, 4, state="review", due=now - timedelta(days=1))
        make_cards(topic, 4)

        queue = _queue(session_factory, None, 3, now)

        assert [cid for cid, _ in queue] == learning_ids[:3]


class TestEligibility:
    def test_future_due_cards_are_skipped(self, session_factory, library, make_cards, now):
        topic = library["topic_a"]
        make_cards(topic, 2, state="learning", due=now + timedelta(minutes=5))
        make_cards(topic, 2, state="review", due=now + timedelta(days=1))

        assert _queue(session_factory, None, 10, now) == []

    def test_due_exactly_now_is_included(self, session_factory, library, make_cards, now):
        (card_id,) = make_cards(library["topic_a"], state="review", due=now)
        assert [cid for cid, _ in _queue(session_factory, None, 10, now)] == [card_id]

    def test_suspended_cards_never_appear(self, session_factory, library, make_cards, now):
        topic = library["topic_a"]
        make_cards(topic, 2, state="learning", due=now - timedelta(minutes=1), suspended=True)
        make_cards(topic, 2, state="review", due=now - timedelta(days=1), suspended=True)
        make_cards(topic, 2, suspended=True)
        (active,) = make_cards(topic)

        assert [cid for cid, _ in _queue(session_factory, None, 10, now)] == [active]

    def test_empty_library_gives_empty_queue(self, session_factory, library, now):
        assert _queue(session_factory, None, 20, now) == []

    def test_zero_limit(self, session_factory, library, make_cards, now):
        make_cards(library["topic_a"], 3)
        assert _queue(session_factory, None, 0, now) == []


class TestScope:
    def test_topic_scope(self, session_factory, library, make_cards, now):
        wanted = make_cards(library["topic_b"], 2)
        make_cards(library["topic_a"], 2)
        make_cards(library["topic_c"], 2)

        queue = _queue(session_factory, StudyScope(topic_id=library["topic_b"]), 10, now)

        assert [cid for cid, _ in queue] == wanted

    def test_source_scope_covers_all_its_topics(self, session_factory, library, make_cards, now):
        in_a = make_cards(library["topic_a"], 2)
        in_b = make_cards(library["topic_b"], 2)
        make_cards(library["topic_c"], 2)

        queue = _queue(session_factory, StudyScope(source_id=library["source"]), 10, now)

        assert sorted(cid for cid, _ in queue) == sorted(in_a + in_b)

    def test_topic_wins_when_both_given(self, session_factory, library, make_cards, now):
        make_cards(library["topic_a"], 2)
        wanted = make_cards(library["topic_c"], 1)

        scope = StudyScope(source_id=library["source"], topic_id=library["topic_c"])
        assert [cid for cid, _ in _queue(session_factory, scope, 10, now)] == wanted

    def test_assembly_is_read_only(self, session_factory, library, make_cards, now):
        make_cards(library["topic_a"], 3, state="review", due=now - timedelta(days=1))

        with session_factory() as db:
            assemble_queue(db, None, 10, now)
            assert not db.dirty
            assert not db.new
