"""Tests for the queue model."""

import pytest

from conftest import make_track
from streamplay.exceptions import QueueInvariantViolation
from streamplay.models import QueuePosition, RepeatMode
from streamplay.queue_model import QueueModel


def ids_of(entries):
    return [e.entry_id for e in entries]


def track_ids(entries):
    return [e.track.id for e in entries]


@pytest.fixture
def filled(tracks):
    """Queue holding tracks 1-5, current entry is the second one."""
    queue = QueueModel()
    ids = queue.enqueue_many(tracks[:5])
    queue.set_current(ids[1])
    return queue, ids


class TestEnqueue:
    """Insertion positions."""

    def test_end_appends(self, queue, tracks):
        queue.enqueue(tracks[0])
        queue.enqueue(tracks[1], QueuePosition.END)
        assert track_ids(queue.entries) == ["1", "2"]

    def test_next_inserts_after_current(self, filled):
        queue, ids = filled
        new_id = queue.enqueue(make_track(9), QueuePosition.NEXT)
        assert ids_of(queue.entries) == [ids[0], ids[1], new_id, ids[2], ids[3], ids[4]]

    def test_next_without_current_inserts_at_front(self, queue, tracks):
        queue.enqueue_many(tracks[:2])
        queue.enqueue(make_track(9), QueuePosition.NEXT)
        assert track_ids(queue.entries) == ["9", "1", "2"]

    def test_index_is_clamped(self, queue, tracks):
        queue.enqueue_many(tracks[:2])
        queue.enqueue(make_track(8), QueuePosition.at(-5))
        queue.enqueue(make_track(9), QueuePosition.at(99))
        queue.enqueue(make_track(7), QueuePosition.at(1))
        assert track_ids(queue.entries) == ["8", "7", "1", "2", "9"]

    def test_enqueue_many_keeps_order_and_distinct_ids(self, queue, tracks):
        queue.enqueue(tracks[4])
        t1, t2 = tracks[0], tracks[1]
        new_ids = queue.enqueue_many([t1, t2, t1], QueuePosition.END)

        assert track_ids(queue.entries) == ["5", "1", "2", "1"]
        assert ids_of(queue.entries)[1:] == new_ids
        assert len(set(new_ids)) == 3

    def test_duplicate_entry_ids_are_skipped(self, filled):
        queue, ids = filled
        existing = queue.get(ids[0])
        assert queue.insert_entries([existing], QueuePosition.END) == []
        assert len(queue) == 5


class TestRemoveReorderClear:
    """Storage mutations."""

    def test_remove_unknown_is_noop(self, filled):
        queue, ids = filled
        assert queue.remove({"missing"}) == set()
        assert len(queue) == 5

    def test_remove_entries(self, filled):
        queue, ids = filled
        assert queue.remove({ids[0], ids[3]}) == {ids[0], ids[3]}
        assert ids_of(queue.entries) == [ids[1], ids[2], ids[4]]

    def test_remove_current_is_deferred(self, filled):
        queue, ids = filled
        queue.remove({ids[1]})

        assert ids[1] not in queue
        assert ids[1] not in ids_of(queue.entries)
        assert queue.is_detached(ids[1])
        assert queue.get(ids[1]) is not None
        # Still anchors traversal
        assert queue.next_in_order(ids[1]).entry_id == ids[2]
        assert queue.prev_in_order(ids[1]).entry_id == ids[0]

    def test_detached_entry_purged_when_current_moves(self, filled):
        queue, ids = filled
        queue.remove({ids[1]})
        queue.set_current(ids[2])
        assert queue.get(ids[1]) is None
        assert not queue.is_detached(ids[1])

    def test_detached_entry_skipped_by_traversal(self, filled):
        queue, ids = filled
        queue.remove({ids[1]})
        assert queue.next_in_order(ids[0]).entry_id == ids[2]

    def test_reorder(self, filled):
        queue, ids = filled
        assert queue.reorder(ids[4], 0) is True
        assert ids_of(queue.entries) == [ids[4], ids[0], ids[1], ids[2], ids[3]]

    def test_reorder_clamps_and_ignores_unknown(self, filled):
        queue, ids = filled
        assert queue.reorder(ids[0], 42) is True
        assert ids_of(queue.entries)[-1] == ids[0]
        assert queue.reorder("missing", 0) is False

    def test_clear_keeps_current(self, filled):
        queue, ids = filled
        queue.clear()
        assert ids_of(queue.entries) == [ids[1]]
        assert queue.current_id == ids[1]

    def test_set_current_unknown_raises(self, queue):
        with pytest.raises(QueueInvariantViolation):
            queue.set_current("missing")


class TestTraversal:
    """Repeat semantics in storage order."""

    def test_repeat_off_terminates(self, filled):
        queue, ids = filled
        assert queue.next_in_order(ids[3]).entry_id == ids[4]
        assert queue.next_in_order(ids[4]) is None
        assert queue.prev_in_order(ids[0]) is None

    def test_repeat_all_wraps(self, filled):
        queue, ids = filled
        queue.repeat_mode = RepeatMode.ALL
        assert queue.next_in_order(ids[4]).entry_id == ids[0]
        assert queue.prev_in_order(ids[0]).entry_id == ids[4]

    def test_repeat_all_single_entry_returns_itself(self, queue, tracks):
        only = queue.enqueue(tracks[0])
        queue.repeat_mode = RepeatMode.ALL
        assert queue.next_in_order(only).entry_id == only

    def test_repeat_one_returns_same(self, filled):
        queue, ids = filled
        queue.repeat_mode = RepeatMode.ONE
        assert queue.next_in_order(ids[2]).entry_id == ids[2]
        assert queue.prev_in_order(ids[2]).entry_id == ids[2]

    def test_repeat_override(self, filled):
        queue, ids = filled
        queue.repeat_mode = RepeatMode.ONE
        assert queue.next_in_order(ids[4], RepeatMode.ALL).entry_id == ids[0]

    def test_no_anchor_starts_at_first(self, filled):
        queue, ids = filled
        assert queue.next_in_order(None).entry_id == ids[0]
        assert QueueModel().next_in_order(None) is None

    def test_history_index(self, filled):
        queue, ids = filled
        assert queue.history_index() == 1
        queue.remove({ids[1]})
        assert queue.history_index() == -1


class TestShuffle:
    """Shuffle order generation."""

    def test_shuffle_is_permutation_led_by_current(self, filled):
        queue, ids = filled
        queue.set_shuffle(True)
        order = ids_of(queue.play_order())
        assert sorted(order) == sorted(ids)
        assert order[0] == ids[1]
        assert queue.history_index() == 0

    def test_redundant_enable_keeps_order(self, filled):
        queue, ids = filled
        assert queue.set_shuffle(True) is True
        first = ids_of(queue.play_order())
        assert queue.set_shuffle(True) is False
        assert ids_of(queue.play_order()) == first

    def test_order_stable_until_content_changes(self, filled):
        queue, ids = filled
        queue.set_shuffle(True)
        first = ids_of(queue.play_order())
        queue.reorder(ids[4], 0)
        assert ids_of(queue.play_order()) == first

        new_id = queue.enqueue(make_track(9))
        order = ids_of(queue.play_order())
        assert sorted(order) == sorted(ids + [new_id])
        assert order[0] == ids[1]

    def test_disable_reverts_to_storage_order(self, filled):
        queue, ids = filled
        queue.set_shuffle(True)
        queue.set_shuffle(False)
        assert ids_of(queue.play_order()) == ids
        assert queue.next_in_order(ids[1]).entry_id == ids[2]

    def test_traversal_follows_shuffle_order(self, filled):
        queue, ids = filled
        queue.set_shuffle(True)
        order = ids_of(queue.play_order())
        for current, expected in zip(order, order[1:]):
            assert queue.next_in_order(current).entry_id == expected
        assert queue.next_in_order(order[-1]) is None

    def test_same_contents_same_permutation(self, tracks):
        from streamplay.models import QueueEntry

        entries = [QueueEntry(entry_id=f"e{i}", track=t) for i, t in enumerate(tracks)]
        a, b = QueueModel(), QueueModel()
        a.replace(entries)
        b.replace(entries)
        a.set_shuffle(True)
        b.set_shuffle(True)
        assert ids_of(a.play_order()) == ids_of(b.play_order())
