"""Loop closing: the keyframe queue, loop detection and thread coordination."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any

from covislam.loop_consistency import (
    COVISIBILITY_CONSISTENCY_THRESHOLD,
    ConsistentGroup,
    check_consistency,
)

# Keyframes that must pass after a closed loop before another loop is searched for.
_KEYFRAMES_BETWEEN_LOOPS = 10


class LoopClosing:
    """Receives keyframes from local mapping and looks for places seen before.

    The keyframe database must offer ``add(kf)`` and
    ``detect_loop_candidates(kf, min_score)``; the vocabulary must offer
    ``score(bow_a, bow_b)``.
    """

    def __init__(self, map: Any, keyframe_db: Any, vocabulary: Any, fix_scale: bool) -> None:
        self._map = map
        self._keyframe_db = keyframe_db
        self._vocabulary = vocabulary
        self.fix_scale = bool(fix_scale)
        self.tracker: Any = None
        self.local_mapper: Any = None

        self._queue: deque[Any] = deque()
        self._lock_queue = threading.Lock()

        self.covisibility_consistency_th = COVISIBILITY_CONSISTENCY_THRESHOLD

        self.current_kf: Any = None
        self.matched_kf: Any = None
        self.consistent_groups: list[ConsistentGroup] = []
        self.enough_consistent_candidates: list[Any] = []
        self.last_loop_kf_id = 0

        self._reset_requested = False
        self._reset_cond = threading.Condition()

        self._finish_requested = False
        self._finished = True
        self._lock_finish = threading.Lock()

        self._running_gba = False
        self._finished_gba = True
        self.stop_gba = False
        self.full_ba_idx = 0
        self._lock_gba = threading.Lock()

    def set_tracker(self, tracker: Any) -> None:
        self.tracker = tracker

    def set_local_mapper(self, local_mapper: Any) -> None:
        self.local_mapper = local_mapper

    # Keyframe queue

    def insert_keyframe(self, kf: Any) -> None:
        """Queue a keyframe for loop detection; the first keyframe is never queued."""
        with self._lock_queue:
            if kf.id != 0:
                self._queue.append(kf)

    def check_new_keyframes(self) -> bool:
        with self._lock_queue:
            return bool(self._queue)

    def keyframes_in_queue(self) -> int:
        with self._lock_queue:
            return len(self._queue)

    def detect_loop(self) -> bool:
        """Take the next queued keyframe and decide whether it closes a consistent loop.

        The keyframe is always added to the database. When a loop is found the
        candidates are left in ``enough_consistent_candidates`` and the keyframe
        stays protected from erasure.
        """
        with self._lock_queue:
            if not self._queue:
                raise IndexError("no keyframes in the loop queue")
            kf = self._queue.popleft()
            # Keep the keyframe alive while this thread works on it.
            kf.set_not_erase()
        self.current_kf = kf

        if kf.id < self.last_loop_kf_id + _KEYFRAMES_BETWEEN_LOOPS:
            self._keyframe_db.add(kf)
            kf.set_erase()
            return False

        # Candidates must beat the weakest similarity within the covisibility graph.
        min_score = 1.0
        for connected in kf.get_vector_covisible_keyframes():
            if connected.is_bad():
                continue
            min_score = min(min_score, self._vocabulary.score(kf.bow_vec, connected.bow_vec))

        candidates = self._keyframe_db.detect_loop_candidates(kf, min_score)
        if not candidates:
            self._keyframe_db.add(kf)
            self.consistent_groups = []
            kf.set_erase()
            return False

        groups, enough = check_consistency(
            candidates, self.consistent_groups, self.covisibility_consistency_th
        )
        self.consistent_groups = groups
        self.enough_consistent_candidates = enough

        self._keyframe_db.add(kf)

        if not enough:
            kf.set_erase()
            return False
        return True

    # Reset

    def request_reset(self) -> None:
        """Ask for a reset and block until the loop closing thread has carried it out."""
        with self._reset_cond:
            self._reset_requested = True
            while self._reset_requested:
                self._reset_cond.wait()

    def reset_if_requested(self) -> None:
        with self._reset_cond:
            if self._reset_requested:
                with self._lock_queue:
                    self._queue.clear()
                self.last_loop_kf_id = 0
                self._reset_requested = False
                self._reset_cond.notify_all()

    # Finish

    def request_finish(self) -> None:
        with self._lock_finish:
            self._finish_requested = True

    def check_finish(self) -> bool:
        with self._lock_finish:
            return self._finish_requested

    def set_finish(self) -> None:
        with self._lock_finish:
            self._finished = True

    def is_finished(self) -> bool:
        with self._lock_finish:
            return self._finished

    # Global bundle adjustment state

    def is_running_gba(self) -> bool:
        with self._lock_gba:
            return self._running_gba

    def is_finished_gba(self) -> bool:
        with self._lock_gba:
            return self._finished_gba