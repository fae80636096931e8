import threading

import pytest

from covislam.loop_closing import LoopClosing
from covislam.map import Map


class FakeKeyFrame:
    def __init__(self, id, connected=()):
        self.id = id
        self.bow_vec = {id: 1.0}
        self.connected = list(connected)
        self.bad = False
        self.not_erase_calls = 0
        self.erase_calls = 0

    def set_not_erase(self):
        self.not_erase_calls += 1

    def set_erase(self):
        self.erase_calls += 1

    def is_bad(self):
        return self.bad

    def get_connected_keyframes(self):
        return set(self.connected)

    def get_vector_covisible_keyframes(self):
        return list(self.connected)


class FakeDatabase:
    def __init__(self, candidates=()):
        self.candidates = list(candidates)
        self.added = []
        self.queries = []

    def add(self, kf):
        self.added.append(kf)

    def detect_loop_candidates(self, kf, min_score):
        self.queries.append((kf, min_score))
        return list(self.candidates)


class FakeVocabulary:
    def __init__(self, scores=None):
        self.scores = scores or {}

    def score(self, a, b):
        (word,) = b
        return self.scores.get(word, 1.0)


def make_closer(candidates=(), scores=None):
    db = FakeDatabase(candidates)
    closer = LoopClosing(Map(), db, FakeVocabulary(scores), True)
    return closer, db


def test_insert_ignores_first_keyframe():
    closer, _ = make_closer()
    closer.insert_keyframe(FakeKeyFrame(0))
    assert closer.check_new_keyframes() is False
    closer.insert_keyframe(FakeKeyFrame(5))
    assert closer.check_new_keyframes() is True
    assert closer.keyframes_in_queue() == 1


def test_detect_loop_on_empty_queue_raises():
    closer, _ = make_closer()
    with pytest.raises(IndexError):
        closer.detect_loop()


def test_too_soon_after_last_loop_is_rejected():
    candidate = FakeKeyFrame(1)
    closer, db = make_closer([candidate])
    kf = FakeKeyFrame(9)
    closer.insert_keyframe(kf)
    assert closer.detect_loop() is False
    assert db.added == [kf]
    assert db.queries == []
    assert kf.not_erase_calls == 1
    assert kf.erase_calls == 1
    assert closer.check_new_keyframes() is False


def test_no_candidates_clears_groups():
    closer, db = make_closer([])
    kf = FakeKeyFrame(20)
    closer.insert_keyframe(kf)
    closer.consistent_groups = ["stale"]
    assert closer.detect_loop() is False
    assert closer.consistent_groups == []
    assert db.added == [kf]
    assert kf.erase_calls == 1


def test_min_score_is_lowest_good_covisible_score():
    a, b, c = FakeKeyFrame(1), FakeKeyFrame(2), FakeKeyFrame(3)
    b.bad = True
    closer, db = make_closer([], scores={1: 0.5, 2: 0.3, 3: 0.4})
    kf = FakeKeyFrame(30, connected=[a, b, c])
    closer.insert_keyframe(kf)
    closer.detect_loop()
    assert db.queries == [(kf, 0.4)]


def test_min_score_without_covisibles_is_one():
    closer, db = make_closer([])
    kf = FakeKeyFrame(30)
    closer.insert_keyframe(kf)
    closer.detect_loop()
    assert db.queries[0][1] == 1.0


def test_loop_accepted_after_consistent_detections():
    neighbour = FakeKeyFrame(2)
    candidate = FakeKeyFrame(1, connected=[neighbour])
    closer, db = make_closer([candidate])
    results = []
    keyframes = [FakeKeyFrame(i) for i in range(20, 24)]
    for kf in keyframes:
        closer.insert_keyframe(kf)
        results.append(closer.detect_loop())
    assert results == [False, False, False, True]
    assert closer.enough_consistent_candidates == [candidate]
    assert [g.consistency for g in closer.consistent_groups] == [3]
    assert db.added == keyframes
    assert keyframes[-1].erase_calls == 0
    assert all(kf.erase_calls == 1 for kf in keyframes[:-1])


def test_reset_clears_queue_and_last_loop():
    closer, _ = make_closer()
    closer.last_loop_kf_id = 20
    closer.insert_keyframe(FakeKeyFrame(5))
    worker = threading.Thread(target=closer.request_reset)
    worker.start()
    while worker.is_alive():
        closer.reset_if_requested()
        worker.join(0.01)
    assert closer.check_new_keyframes() is False
    assert closer.last_loop_kf_id == 0


def test_finish_flags():
    closer, _ = make_closer()
    assert closer.is_finished() is True
    assert closer.check_finish() is False
    closer.request_finish()
    assert closer.check_finish() is True
    closer.set_finish()
    assert closer.is_finished() is True


def test_gba_flags_initially_idle():
    closer, _ = make_closer()
    assert closer.is_running_gba() is False
    assert closer.is_finished_gba() is True